"""Resumable index maintenance job.

The driver walks the candidate list strictly in order, one candidate at a
time. After each rebuild attempt the checkpoint is persisted before the
next candidate starts; the checkpoint is the only state shared between
candidates. A job started against a database that already has a
checkpoint resumes from it instead of scanning again.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Protocol

from idxops.core.checkpoint import JobCheckpoint
from idxops.core.indexes import (
    IndexAdapter,
    RebuildCandidate,
    RebuildOutcome,
    RebuildStatus,
    rebuild_index,
    scan_candidates,
)
from idxops.core.params import JobParams


class CheckpointStorage(Protocol):
    """Interface for checkpoint persistence used by the job driver."""

    key: str

    def load(self) -> JobCheckpoint | None: ...

    def save(self, cp: JobCheckpoint) -> None: ...

    def clear(self) -> bool: ...


@dataclass(frozen=True)
class MaintenanceReport:
    """Aggregate result of a maintenance job (including resumed progress)."""

    outcomes: tuple[RebuildOutcome, ...]
    resumed: bool = False
    job: JobParams | None = None

    def count(self, status: RebuildStatus) -> int:
        return sum(1 for o in self.outcomes if o.status == status)

    @property
    def succeeded(self) -> int:
        return self.count(RebuildStatus.SUCCEEDED) + self.count(
            RebuildStatus.SUCCEEDED_OFFLINE
        )

    @property
    def failed(self) -> int:
        return self.count(RebuildStatus.FAILED)

    @property
    def ok(self) -> bool:
        return self.failed == 0


def start_or_resume(
    adapter: IndexAdapter,
    store: CheckpointStorage,
    job: JobParams,
) -> tuple[JobCheckpoint, bool]:
    """
    Return the checkpoint to work from and whether it was resumed.

    A new checkpoint is persisted before any rebuild starts, so even an
    interruption during the first candidate resumes against the same list.

    Raises:
        ScanError: If no checkpoint exists and the scan fails.
    """
    existing = store.load()
    if existing is not None:
        return existing, True

    candidates = scan_candidates(adapter, job.threshold, job.table_filter)
    cp = JobCheckpoint(key=store.key, job=job, candidates=tuple(candidates))
    store.save(cp)
    return cp, False


def process_checkpoint(
    adapter: IndexAdapter,
    store: CheckpointStorage,
    cp: JobCheckpoint,
    *,
    resumed: bool = False,
    on_start: Callable[[int, int, RebuildCandidate], None] | None = None,
    on_outcome: Callable[[int, int, RebuildOutcome], None] | None = None,
) -> MaintenanceReport:
    """
    Rebuild every pending candidate of `cp`, checkpointing after each attempt.

    Args:
        adapter: Index adapter used for the rebuilds.
        store: Checkpoint storage for the target database.
        cp: Checkpoint to continue from.
        resumed: Whether `cp` was loaded from an earlier run.
        on_start: Called with (position, total, candidate) before a rebuild.
        on_outcome: Called with (position, total, outcome) after the
            checkpoint for that candidate was persisted.

    Returns:
        A MaintenanceReport with one outcome per candidate, in order,
        including outcomes recorded by earlier runs.
    """
    total = len(cp.candidates)

    while not cp.done:
        position = cp.next_index
        candidate = cp.candidates[position]
        if on_start:
            on_start(position, total, candidate)

        outcome = rebuild_index(
            adapter,
            candidate,
            allow_offline_fallback=cp.job.allow_offline_fallback,
        )
        cp = cp.advance(outcome)
        store.save(cp)

        if on_outcome:
            on_outcome(position, total, outcome)

    store.clear()
    return MaintenanceReport(outcomes=cp.outcomes, resumed=resumed, job=cp.job)


def run_maintenance(
    adapter: IndexAdapter,
    store: CheckpointStorage,
    job: JobParams,
    *,
    on_start: Callable[[int, int, RebuildCandidate], None] | None = None,
    on_outcome: Callable[[int, int, RebuildOutcome], None] | None = None,
) -> MaintenanceReport:
    """
    Start or resume a maintenance job and run it to completion.

    When a checkpoint exists, `job` is ignored: the stored candidate list
    and fallback setting are used so a resumed job behaves like the
    original one.

    Raises:
        ScanError: If a fresh job cannot scan the database.
    """
    cp, resumed = start_or_resume(adapter, store, job)
    return process_checkpoint(
        adapter,
        store,
        cp,
        resumed=resumed,
        on_start=on_start,
        on_outcome=on_outcome,
    )
