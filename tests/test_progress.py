from idxops.cli.common.progress import _MAX_LABEL_WIDTH, _display_label, _truncate
from idxops.core.indexes import RebuildCandidate


def test_display_label_aligns_counter_to_total_width():
    first = _display_label(0, 12, RebuildCandidate(table="T1", index="I1"))
    last = _display_label(11, 12, RebuildCandidate(table="T2", index="I2"))

    assert first == "[ 1/12] dbo.T1.I1"
    assert last == "[12/12] dbo.T2.I2"
    assert first.index("dbo") == last.index("dbo")


def test_display_label_truncates_long_names():
    candidate = RebuildCandidate(table="t" * 80, index="IX")
    label = _display_label(0, 1, candidate)

    assert label.endswith("...")
    assert len(label) == len("[1/1] ") + _MAX_LABEL_WIDTH


def test_truncate_short_text_unchanged():
    assert _truncate("abc", 10) == "abc"
