import pytest

from idxops.core.indexes import (
    FragmentationRecord,
    OfflineRequiredError,
    RebuildCandidate,
    RebuildError,
    RebuildStatus,
    ScanError,
    SqlConnectionError,
    quote_identifier,
    rebuild_index,
    rebuild_statement,
    scan_candidates,
    select_candidates,
)

RECORDS = [
    FragmentationRecord(schema="dbo", table="T1", index="I1", fragmentation=25.0),
    FragmentationRecord(schema="dbo", table="T2", index="I2", fragmentation=15.0),
    FragmentationRecord(schema="dbo", table="T3", index="I3", fragmentation=30.0),
]


class _ScanAdapter:
    def __init__(self, records=None, exc: Exception | None = None):
        self.records = records or []
        self.exc = exc
        self.calls = 0

    def fetch_fragmentation(self):
        self.calls += 1
        if self.exc:
            raise self.exc
        return list(self.records)


class _RebuildAdapter:
    """Fails per (index, online) according to a mapping of exceptions."""

    def __init__(self, errors: dict[tuple[str, bool], Exception] | None = None):
        self.errors = errors or {}
        self.calls: list[tuple[str, bool]] = []

    def rebuild(self, candidate: RebuildCandidate, *, online: bool) -> None:
        self.calls.append((candidate.index, online))
        exc = self.errors.get((candidate.index, online))
        if exc:
            raise exc


def test_select_candidates_threshold_scenario_keeps_query_order():
    assert select_candidates(RECORDS, 20) == [
        RebuildCandidate(table="T1", index="I1"),
        RebuildCandidate(table="T3", index="I3"),
    ]


def test_select_candidates_includes_exact_threshold_and_excludes_just_below():
    records = [
        FragmentationRecord(schema="dbo", table="A", index="at", fragmentation=20.0),
        FragmentationRecord(schema="dbo", table="A", index="below", fragmentation=19.999),
    ]

    assert [c.index for c in select_candidates(records, 20)] == ["at"]


def test_select_candidates_table_filter_is_exact_match():
    assert select_candidates(RECORDS, 20, "T1") == [RebuildCandidate(table="T1", index="I1")]
    assert select_candidates(RECORDS, 20, "T2") == []
    assert select_candidates(RECORDS, 20, "t1") == []


def test_select_candidates_threshold_zero_selects_everything():
    assert len(select_candidates(RECORDS, 0)) == 3


def test_scan_candidates_is_idempotent_for_unchanged_statistics():
    adapter = _ScanAdapter(RECORDS)

    assert scan_candidates(adapter, 20) == scan_candidates(adapter, 20)
    assert adapter.calls == 2


def test_scan_candidates_wraps_connection_errors():
    adapter = _ScanAdapter(exc=SqlConnectionError("login failed"))

    with pytest.raises(ScanError, match="login failed"):
        scan_candidates(adapter, 20)


def test_scan_candidates_propagates_scan_errors():
    adapter = _ScanAdapter(exc=ScanError("query timeout"))

    with pytest.raises(ScanError, match="query timeout"):
        scan_candidates(adapter, 20)


@pytest.mark.parametrize(
    ("name", "quoted"),
    [
        ("IX_Orders", "[IX_Orders]"),
        ("odd]name", "[odd]]name]"),
        ("with space", "[with space]"),
    ],
)
def test_quote_identifier(name: str, quoted: str):
    assert quote_identifier(name) == quoted


@pytest.mark.parametrize("name", ["", "   ", "a" * 129, "bad\x00name"])
def test_quote_identifier_rejects_invalid_names(name: str):
    with pytest.raises(ValueError):
        quote_identifier(name)


def test_rebuild_statement_online_and_offline():
    c = RebuildCandidate(table="Orders", index="IX_Orders_Date", schema="sales")

    assert rebuild_statement(c, online=True) == (
        "ALTER INDEX [IX_Orders_Date] ON [sales].[Orders] REBUILD WITH (ONLINE = ON)"
    )
    assert rebuild_statement(c, online=False) == (
        "ALTER INDEX [IX_Orders_Date] ON [sales].[Orders] REBUILD"
    )


def test_rebuild_index_online_success():
    adapter = _RebuildAdapter()
    outcome = rebuild_index(adapter, RebuildCandidate(table="T1", index="I1"))

    assert outcome.status == RebuildStatus.SUCCEEDED
    assert outcome.error is None
    assert adapter.calls == [("I1", True)]


def test_rebuild_index_offline_error_without_fallback_fails():
    adapter = _RebuildAdapter({("I1", True): OfflineRequiredError("LOB column", error_code=2725)})
    outcome = rebuild_index(
        adapter, RebuildCandidate(table="T1", index="I1"), allow_offline_fallback=False
    )

    assert outcome.status == RebuildStatus.FAILED
    assert "LOB column" in (outcome.error or "")
    assert adapter.calls == [("I1", True)]


def test_rebuild_index_offline_error_with_fallback_succeeds_offline():
    adapter = _RebuildAdapter({("I1", True): OfflineRequiredError("edition", error_code=1712)})
    outcome = rebuild_index(
        adapter, RebuildCandidate(table="T1", index="I1"), allow_offline_fallback=True
    )

    assert outcome.status == RebuildStatus.SUCCEEDED_OFFLINE
    assert adapter.calls == [("I1", True), ("I1", False)]


def test_rebuild_index_failed_fallback_is_reported():
    adapter = _RebuildAdapter(
        {
            ("I1", True): OfflineRequiredError("edition", error_code=1712),
            ("I1", False): RebuildError("lock timeout", error_code=1222),
        }
    )
    outcome = rebuild_index(
        adapter, RebuildCandidate(table="T1", index="I1"), allow_offline_fallback=True
    )

    assert outcome.status == RebuildStatus.FAILED
    assert "lock timeout" in (outcome.error or "")


def test_rebuild_index_other_errors_never_trigger_fallback():
    adapter = _RebuildAdapter({("I3", True): RebuildError("deadlock victim", error_code=1205)})
    outcome = rebuild_index(
        adapter, RebuildCandidate(table="T3", index="I3"), allow_offline_fallback=True
    )

    assert outcome.status == RebuildStatus.FAILED
    assert outcome.error == "deadlock victim"
    assert adapter.calls == [("I3", True)]


def test_rebuild_index_connection_error_is_a_failed_outcome():
    adapter = _RebuildAdapter({("I1", True): SqlConnectionError("network down")})
    outcome = rebuild_index(adapter, RebuildCandidate(table="T1", index="I1"))

    assert outcome.status == RebuildStatus.FAILED
    assert outcome.ok is False
    assert "network down" in (outcome.error or "")
