"""Durable job checkpoints.

A checkpoint records the candidate list of a running maintenance job, the
position of the next candidate to attempt and the outcomes recorded so far.
It is written after every candidate, so a job that is killed between two
rebuilds can be resumed without re-attempting finished work or skipping
pending work.
"""

from __future__ import annotations

import json
import os
import re
import tempfile
from dataclasses import dataclass, field, replace
from pathlib import Path

from idxops.core.indexes import RebuildCandidate, RebuildOutcome, RebuildStatus
from idxops.core.params import JobParams

_FORMAT_VERSION = 1


class CheckpointError(RuntimeError):
    """Raised when a checkpoint exists but cannot be read."""


@dataclass(frozen=True)
class JobCheckpoint:
    """
    Snapshot of a maintenance job's progress.

    Attributes:
        key: Identity of the target database.
        job: Parameters the job was started with.
        candidates: Full ordered candidate list produced by the scan.
        next_index: Candidates before this position have been attempted.
        outcomes: Outcomes for candidates[0:next_index], in order.
    """

    key: str
    job: JobParams
    candidates: tuple[RebuildCandidate, ...]
    next_index: int = 0
    outcomes: tuple[RebuildOutcome, ...] = field(default_factory=tuple)

    @property
    def done(self) -> bool:
        return self.next_index >= len(self.candidates)

    @property
    def pending(self) -> tuple[RebuildCandidate, ...]:
        return self.candidates[self.next_index :]

    def advance(self, outcome: RebuildOutcome) -> JobCheckpoint:
        """Return a new checkpoint with the current candidate marked attempted."""
        if self.done:
            raise ValueError("Checkpoint has no pending candidates.")
        if outcome.candidate != self.candidates[self.next_index]:
            raise ValueError(
                f"Outcome for {outcome.candidate.label} does not match the next "
                f"pending candidate {self.candidates[self.next_index].label}."
            )
        return replace(
            self,
            next_index=self.next_index + 1,
            outcomes=self.outcomes + (outcome,),
        )


def _candidate_to_dict(c: RebuildCandidate) -> dict[str, str]:
    return {"schema": c.schema, "table": c.table, "index": c.index}


def _candidate_from_dict(item: dict) -> RebuildCandidate:
    return RebuildCandidate(
        table=str(item["table"]),
        index=str(item["index"]),
        schema=str(item.get("schema") or "dbo"),
    )


def checkpoint_to_payload(cp: JobCheckpoint) -> dict:
    """Serialize a checkpoint to a JSON-compatible dict."""
    return {
        "version": _FORMAT_VERSION,
        "key": cp.key,
        "job": {
            "threshold": cp.job.threshold,
            "allow_offline_fallback": cp.job.allow_offline_fallback,
            "table_filter": cp.job.table_filter,
        },
        "candidates": [_candidate_to_dict(c) for c in cp.candidates],
        "next_index": cp.next_index,
        "outcomes": [
            {
                "candidate": _candidate_to_dict(o.candidate),
                "status": o.status.value,
                "error": o.error,
            }
            for o in cp.outcomes
        ],
    }


def checkpoint_from_payload(payload: dict) -> JobCheckpoint:
    """Deserialize a checkpoint, validating its internal consistency."""
    if payload.get("version") != _FORMAT_VERSION:
        raise ValueError(f"Unsupported checkpoint version: {payload.get('version')!r}")
    job = payload.get("job") or {}
    candidates = tuple(_candidate_from_dict(c) for c in payload["candidates"])
    outcomes = tuple(
        RebuildOutcome(
            candidate=_candidate_from_dict(o["candidate"]),
            status=RebuildStatus(o["status"]),
            error=o.get("error"),
        )
        for o in payload.get("outcomes", [])
    )
    next_index = int(payload["next_index"])
    if not 0 <= next_index <= len(candidates):
        raise ValueError(f"next_index {next_index} is out of range.")
    if len(outcomes) != next_index:
        raise ValueError("Recorded outcomes do not match the checkpoint position.")
    return JobCheckpoint(
        key=str(payload["key"]),
        job=JobParams(
            threshold=int(job.get("threshold", 0)),
            allow_offline_fallback=bool(job.get("allow_offline_fallback", False)),
            table_filter=job.get("table_filter"),
        ),
        candidates=candidates,
        next_index=next_index,
        outcomes=outcomes,
    )


class CheckpointStore:
    """File-backed checkpoint storage, one JSON file per target database."""

    _STATE_DIR_ENV = "IDXOPS_STATE_DIR"

    def __init__(self, key: str, state_dir: Path | None = None):
        """Create a store for the database identified by `key`."""
        self.key = key
        self.path = self._build_path(key, state_dir)

    @classmethod
    def default_state_dir(cls) -> Path:
        """Return the state directory, honoring env overrides."""
        root = os.getenv(cls._STATE_DIR_ENV)
        if root:
            return Path(root)
        xdg = os.getenv("XDG_STATE_HOME")
        base = Path(xdg) if xdg else Path.home() / ".local" / "state"
        return base / "idxops"

    def _build_path(self, key: str, state_dir: Path | None) -> Path:
        base = state_dir if state_dir is not None else self.default_state_dir()
        safe_key = re.sub(r"[^A-Za-z0-9_.-]+", "_", key)
        return base / f"checkpoint_{safe_key}.json"

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> JobCheckpoint | None:
        """
        Load the checkpoint, or return None when no job is in progress.

        Raises:
            CheckpointError: If the file exists but is unreadable or invalid.
        """
        if not self.path.exists():
            return None
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
            cp = checkpoint_from_payload(payload)
        except (OSError, json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
            raise CheckpointError(f"Checkpoint {self.path} is unreadable: {exc}") from exc
        if cp.key != self.key:
            raise CheckpointError(
                f"Checkpoint {self.path} belongs to '{cp.key}', not '{self.key}'."
            )
        return cp

    def save(self, cp: JobCheckpoint) -> None:
        """Persist the checkpoint atomically and durably."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = json.dumps(checkpoint_to_payload(cp), indent=2)
        fd, tmp = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(data)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp, self.path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise
        self._sync_dir()

    def _sync_dir(self) -> None:
        """Flush the directory entry so the rename survives a power loss."""
        if os.name == "nt":
            return
        dir_fd = os.open(self.path.parent, os.O_RDONLY)
        try:
            os.fsync(dir_fd)
        finally:
            os.close(dir_fd)

    def clear(self) -> bool:
        """Delete the checkpoint. Returns True if one existed."""
        try:
            self.path.unlink()
        except FileNotFoundError:
            return False
        return True
