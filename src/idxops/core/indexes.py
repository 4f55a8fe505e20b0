"""Core index domain models plus candidate selection and rebuild logic.

This module defines the index data structures (FragmentationRecord,
RebuildCandidate, RebuildOutcome) and the domain-level operations for
selecting fragmented indexes and rebuilding a single index. It is free of
driver and CLI concerns: talking to SQL Server is delegated to an adapter,
so the same logic can be reused by the CLI, automation and tests.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Protocol

_MAX_IDENTIFIER_LENGTH = 128


class SqlConnectionError(RuntimeError):
    """Raised when a connection to the server cannot be opened."""


class ScanError(RuntimeError):
    """Raised when the fragmentation scan fails. Always fatal for a job."""


class RebuildError(RuntimeError):
    """
    Raised when an index rebuild statement fails.

    Attributes:
        error_code: Native SQL Server error number, when the driver reported one.
    """

    def __init__(self, message: str, *, error_code: int | None = None):
        super().__init__(message)
        self.error_code = error_code


class OfflineRequiredError(RebuildError):
    """Raised when an index cannot be rebuilt with ONLINE = ON."""


@dataclass(frozen=True)
class FragmentationRecord:
    """
    One row of fragmentation statistics.

    Attributes:
        schema: Schema that owns the table.
        table: Table name.
        index: Index name.
        fragmentation: Average fragmentation in percent (0-100).
    """

    schema: str
    table: str
    index: str
    fragmentation: float


@dataclass(frozen=True)
class RebuildCandidate:
    """An index selected for rebuild."""

    table: str
    index: str
    schema: str = "dbo"

    @property
    def label(self) -> str:
        """Human-readable `schema.table.index` label."""
        return f"{self.schema}.{self.table}.{self.index}"


class RebuildStatus(str, Enum):
    """
    Result of a single rebuild attempt.

    Values:
        SUCCEEDED: The online rebuild completed.
        SUCCEEDED_OFFLINE: The online rebuild was not possible and the
            offline fallback completed.
        FAILED: The rebuild (and fallback, if attempted) failed.
    """

    SUCCEEDED = "SUCCEEDED"
    SUCCEEDED_OFFLINE = "SUCCEEDED_OFFLINE"
    FAILED = "FAILED"


@dataclass(frozen=True)
class RebuildOutcome:
    """Outcome of a rebuild attempt for one candidate."""

    candidate: RebuildCandidate
    status: RebuildStatus
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status != RebuildStatus.FAILED


class IndexAdapter(Protocol):
    """Interface for index statistics and DDL operations used by the core domain."""

    def fetch_fragmentation(self) -> list[FragmentationRecord]:
        """Return fragmentation statistics for the target database, in query order."""
        ...

    def rebuild(self, candidate: RebuildCandidate, *, online: bool) -> None:
        """Rebuild one index on a fresh connection."""
        ...


def quote_identifier(name: str) -> str:
    """
    Return `name` as a bracket-quoted T-SQL identifier.

    Object names cannot be bound as query parameters in DDL, so they are
    validated and quoted here instead. Closing brackets are doubled.

    Raises:
        ValueError: If the name is empty, too long or contains a NUL byte.
    """
    if not name or not name.strip():
        raise ValueError("Identifier must not be empty.")
    if len(name) > _MAX_IDENTIFIER_LENGTH:
        raise ValueError(
            f"Identifier exceeds {_MAX_IDENTIFIER_LENGTH} characters: '{name[:32]}...'"
        )
    if "\x00" in name:
        raise ValueError("Identifier must not contain NUL characters.")
    return "[" + name.replace("]", "]]") + "]"


def rebuild_statement(candidate: RebuildCandidate, *, online: bool) -> str:
    """Build the ALTER INDEX ... REBUILD statement for a candidate."""
    target = (
        f"{quote_identifier(candidate.index)} ON "
        f"{quote_identifier(candidate.schema)}.{quote_identifier(candidate.table)}"
    )
    if online:
        return f"ALTER INDEX {target} REBUILD WITH (ONLINE = ON)"
    return f"ALTER INDEX {target} REBUILD"


def select_candidates(
    records: Iterable[FragmentationRecord],
    threshold: float,
    table_filter: str | None = None,
) -> list[RebuildCandidate]:
    """
    Filter fragmentation records down to rebuild candidates.

    A record is selected when its fragmentation is at least `threshold` and,
    if a table filter is given, its table name equals the filter. The input
    order is preserved.
    """
    return [
        RebuildCandidate(table=r.table, index=r.index, schema=r.schema)
        for r in records
        if r.fragmentation >= threshold
        and (table_filter is None or r.table == table_filter)
    ]


def scan_candidates(
    adapter: IndexAdapter,
    threshold: float,
    table_filter: str | None = None,
) -> list[RebuildCandidate]:
    """
    Scan the database and return the ordered list of rebuild candidates.

    Raises:
        ScanError: If the statistics query or its connection fails.
    """
    try:
        records = adapter.fetch_fragmentation()
    except ScanError:
        raise
    except SqlConnectionError as exc:
        raise ScanError(f"Could not connect for fragmentation scan: {exc}") from exc
    return select_candidates(records, threshold, table_filter)


def rebuild_index(
    adapter: IndexAdapter,
    candidate: RebuildCandidate,
    *,
    allow_offline_fallback: bool = False,
) -> RebuildOutcome:
    """
    Rebuild one index online, falling back to an offline rebuild if allowed.

    Failures never propagate: they are returned as a FAILED outcome so the
    caller can continue with the next candidate.
    """
    try:
        adapter.rebuild(candidate, online=True)
        return RebuildOutcome(candidate=candidate, status=RebuildStatus.SUCCEEDED)
    except OfflineRequiredError as exc:
        if not allow_offline_fallback:
            return RebuildOutcome(
                candidate=candidate,
                status=RebuildStatus.FAILED,
                error=f"Online rebuild not supported (offline fallback disabled): {exc}",
            )
    except (RebuildError, SqlConnectionError, ValueError) as exc:
        return RebuildOutcome(
            candidate=candidate, status=RebuildStatus.FAILED, error=str(exc)
        )

    try:
        adapter.rebuild(candidate, online=False)
    except (RebuildError, SqlConnectionError) as exc:
        return RebuildOutcome(
            candidate=candidate,
            status=RebuildStatus.FAILED,
            error=f"Offline rebuild failed: {exc}",
        )
    return RebuildOutcome(candidate=candidate, status=RebuildStatus.SUCCEEDED_OFFLINE)
