import json
import os

import pytest

from idxops.core import checkpoint
from idxops.core.checkpoint import CheckpointError, CheckpointStore, JobCheckpoint
from idxops.core.indexes import RebuildCandidate, RebuildOutcome, RebuildStatus
from idxops.core.params import JobParams

C1 = RebuildCandidate(table="T1", index="I1")
C2 = RebuildCandidate(table="T2", index="I2", schema="sales")


def _checkpoint() -> JobCheckpoint:
    return JobCheckpoint(
        key="srv,1433/db",
        job=JobParams(threshold=30, allow_offline_fallback=True, table_filter=None),
        candidates=(C1, C2),
    )


def test_advance_moves_position_and_records_outcome():
    cp = _checkpoint().advance(
        RebuildOutcome(candidate=C1, status=RebuildStatus.FAILED, error="boom")
    )

    assert cp.next_index == 1
    assert cp.pending == (C2,)
    assert cp.outcomes[0].error == "boom"
    assert cp.done is False


def test_advance_rejects_out_of_order_outcome():
    with pytest.raises(ValueError, match="does not match"):
        _checkpoint().advance(RebuildOutcome(candidate=C2, status=RebuildStatus.SUCCEEDED))


def test_advance_rejects_finished_checkpoint():
    cp = _checkpoint()
    cp = cp.advance(RebuildOutcome(candidate=C1, status=RebuildStatus.SUCCEEDED))
    cp = cp.advance(RebuildOutcome(candidate=C2, status=RebuildStatus.SUCCEEDED_OFFLINE))

    assert cp.done is True
    with pytest.raises(ValueError):
        cp.advance(RebuildOutcome(candidate=C2, status=RebuildStatus.SUCCEEDED))


def test_store_persists_progress_between_instances(tmp_path):
    cp = _checkpoint().advance(
        RebuildOutcome(candidate=C1, status=RebuildStatus.SUCCEEDED_OFFLINE)
    )
    CheckpointStore("srv,1433/db", state_dir=tmp_path).save(cp)

    loaded = CheckpointStore("srv,1433/db", state_dir=tmp_path).load()

    assert loaded == cp


def test_store_load_returns_none_without_checkpoint(tmp_path):
    assert CheckpointStore("srv,1433/db", state_dir=tmp_path).load() is None


def test_store_leaves_no_temp_files(tmp_path):
    store = CheckpointStore("srv,1433/db", state_dir=tmp_path)
    store.save(_checkpoint())

    assert [p.name for p in tmp_path.iterdir()] == [store.path.name]


def test_store_rejects_corrupt_file(tmp_path):
    store = CheckpointStore("srv,1433/db", state_dir=tmp_path)
    store.path.parent.mkdir(parents=True, exist_ok=True)
    store.path.write_text("{not json")

    with pytest.raises(CheckpointError, match="unreadable"):
        store.load()


def test_store_rejects_inconsistent_position(tmp_path):
    store = CheckpointStore("srv,1433/db", state_dir=tmp_path)
    store.save(_checkpoint())
    payload = json.loads(store.path.read_text())
    payload["next_index"] = 2
    store.path.write_text(json.dumps(payload))

    with pytest.raises(CheckpointError):
        store.load()


def test_store_rejects_checkpoint_of_other_database(tmp_path):
    store = CheckpointStore("srv,1433/db", state_dir=tmp_path)
    store.save(_checkpoint())
    payload = json.loads(store.path.read_text())
    payload["key"] = "other,1433/db"
    store.path.write_text(json.dumps(payload))

    with pytest.raises(CheckpointError, match="belongs to"):
        store.load()


def test_store_clear(tmp_path):
    store = CheckpointStore("srv,1433/db", state_dir=tmp_path)
    store.save(_checkpoint())

    assert store.clear() is True
    assert store.clear() is False
    assert store.exists() is False


def test_store_path_is_sanitized_and_honors_env(tmp_path, monkeypatch):
    monkeypatch.setenv("IDXOPS_STATE_DIR", str(tmp_path / "custom"))
    store = CheckpointStore(r"host\inst,1433/My DB")

    assert store.path.parent == tmp_path / "custom"
    assert store.path.name == "checkpoint_host_inst_1433_My_DB.json"


@pytest.mark.skipif(os.name == "nt", reason="directory fsync is POSIX only")
def test_store_save_syncs_file_and_directory(tmp_path, monkeypatch):
    store = CheckpointStore("srv,1433/db", state_dir=tmp_path)
    synced: list[int] = []
    real_fsync = os.fsync

    def _fsync(fd):
        synced.append(fd)
        real_fsync(fd)

    monkeypatch.setattr(checkpoint.os, "fsync", _fsync)

    store.save(_checkpoint())

    assert len(synced) == 2
    assert store.load() == _checkpoint()
