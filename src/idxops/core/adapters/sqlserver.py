from __future__ import annotations

import re
from contextlib import contextmanager
from typing import Iterator

import pyodbc

from idxops.core.indexes import (
    FragmentationRecord,
    OfflineRequiredError,
    RebuildCandidate,
    RebuildError,
    ScanError,
    SqlConnectionError,
    rebuild_statement,
)
from idxops.core.params import ConnectionParams

ODBC_DRIVER_PREFERENCES = [
    "ODBC Driver 18 for SQL Server",
    "ODBC Driver 17 for SQL Server",
    "ODBC Driver 13 for SQL Server",
    "SQL Server Native Client 11.0",
    "SQL Server",
]

CONNECT_TIMEOUT_SECONDS = 30
SCAN_TIMEOUT_SECONDS = 120
# Stays under the 30 minute re-queue window of the host scheduler.
REBUILD_TIMEOUT_SECONDS = 1500

# 1712: online index operations require Enterprise edition
# 2725: index contains text/ntext/image/FILESTREAM columns
OFFLINE_REQUIRED_ERRORS = frozenset({1712, 2725})

# Each diagnostic record ends in "(<native error>)"; only the first one also
# carries the "(SQLExecDirectW)" call suffix. Records are joined with "; [".
_RECORD_CODE_RE = re.compile(r"\((\d+)\)(?:\s*\(SQL\w+\))?\s*$")

FRAGMENTATION_QUERY = """
SELECT
    s.name AS schema_name,
    t.name AS table_name,
    i.name AS index_name,
    AVG(ps.avg_fragmentation_in_percent) AS fragmentation
FROM sys.dm_db_index_physical_stats(DB_ID(?), NULL, NULL, NULL, 'LIMITED') AS ps
JOIN sys.indexes AS i
    ON i.object_id = ps.object_id AND i.index_id = ps.index_id
JOIN sys.tables AS t
    ON t.object_id = i.object_id
JOIN sys.schemas AS s
    ON s.schema_id = t.schema_id
WHERE i.index_id > 0
  AND i.name IS NOT NULL
  AND ps.alloc_unit_type_desc = 'IN_ROW_DATA'
GROUP BY s.name, t.name, i.name
ORDER BY s.name, t.name, i.name
"""


def get_available_odbc_drivers() -> list[str]:
    """Return installed ODBC drivers that can talk to SQL Server."""
    return [d for d in pyodbc.drivers() if "SQL Server" in d]


def get_best_odbc_driver() -> str | None:
    """Return the most preferred installed SQL Server ODBC driver."""
    available = get_available_odbc_drivers()
    for preferred in ODBC_DRIVER_PREFERENCES:
        if preferred in available:
            return preferred
    return available[0] if available else None


def _odbc_value(value: str) -> str:
    """Brace-quote a connection string value when it contains special characters."""
    if any(ch in value for ch in ";{}=") or value != value.strip():
        return "{" + value.replace("}", "}}") + "}"
    return value


def build_connection_string(params: ConnectionParams, driver: str) -> str:
    """
    Build an ODBC connection string for an encrypted, SQL-authenticated
    TCP connection to `params.server:params.port`.
    """
    parts = [
        f"DRIVER={{{driver}}}",
        f"SERVER=tcp:{params.server},{params.port}",
        f"DATABASE={_odbc_value(params.database)}",
        f"UID={_odbc_value(params.username)}",
        f"PWD={_odbc_value(params.password)}",
        "Encrypt=yes",
        f"Connection Timeout={CONNECT_TIMEOUT_SECONDS}",
    ]
    return ";".join(parts)


def native_error_codes(exc: pyodbc.Error) -> list[int]:
    """Extract SQL Server native error numbers from a pyodbc error."""
    codes: list[int] = []
    for record in _error_text(exc).split("; ["):
        match = _RECORD_CODE_RE.search(record.strip())
        if match:
            codes.append(int(match.group(1)))
    return codes


def _sqlstate(exc: pyodbc.Error) -> str | None:
    if exc.args and isinstance(exc.args[0], str) and len(exc.args[0]) == 5:
        return exc.args[0]
    return None


def _error_text(exc: pyodbc.Error) -> str:
    return str(exc.args[1]) if len(exc.args) > 1 else str(exc)


def classify_rebuild_error(exc: pyodbc.Error) -> RebuildError:
    """Map a driver error raised by ALTER INDEX to the domain error taxonomy."""
    codes = native_error_codes(exc)
    code = codes[-1] if codes else None
    text = _error_text(exc)
    if OFFLINE_REQUIRED_ERRORS.intersection(codes):
        offline_code = next(c for c in codes if c in OFFLINE_REQUIRED_ERRORS)
        return OfflineRequiredError(text, error_code=offline_code)
    if _sqlstate(exc) == "HYT00":
        return RebuildError(
            f"Rebuild timed out after {REBUILD_TIMEOUT_SECONDS}s: {text}",
            error_code=code,
        )
    return RebuildError(text, error_code=code)


@contextmanager
def open_connection(params: ConnectionParams) -> Iterator[pyodbc.Connection]:
    """
    Open a connection to the target database and close it on exit.

    Raises:
        SqlConnectionError: If no driver is installed or the connection fails.
    """
    driver = params.driver or get_best_odbc_driver()
    if not driver:
        raise SqlConnectionError("No SQL Server ODBC driver found")

    try:
        conn = pyodbc.connect(
            build_connection_string(params, driver),
            autocommit=True,
            timeout=CONNECT_TIMEOUT_SECONDS,
        )
    except pyodbc.Error as exc:
        raise SqlConnectionError(
            f"Could not connect to {params.server},{params.port}/{params.database}: "
            f"{_error_text(exc)}"
        ) from exc

    try:
        yield conn
    finally:
        conn.close()


class SqlServerIndexAdapter:
    """Adapter around pyodbc for fragmentation statistics and index rebuilds."""

    def __init__(self, params: ConnectionParams):
        self.params = params

    def fetch_fragmentation(self) -> list[FragmentationRecord]:
        """Return per-index average fragmentation for the target database."""
        with open_connection(self.params) as conn:
            conn.timeout = SCAN_TIMEOUT_SECONDS
            try:
                cursor = conn.cursor()
                cursor.execute(FRAGMENTATION_QUERY, self.params.database)
                rows = cursor.fetchall()
            except pyodbc.Error as exc:
                raise ScanError(f"Fragmentation query failed: {_error_text(exc)}") from exc

        return [
            FragmentationRecord(
                schema=row.schema_name,
                table=row.table_name,
                index=row.index_name,
                fragmentation=float(row.fragmentation or 0.0),
            )
            for row in rows
        ]

    def rebuild(self, candidate: RebuildCandidate, *, online: bool) -> None:
        """Run ALTER INDEX ... REBUILD on its own connection."""
        statement = rebuild_statement(candidate, online=online)
        with open_connection(self.params) as conn:
            conn.timeout = REBUILD_TIMEOUT_SECONDS
            try:
                conn.execute(statement)
            except pyodbc.Error as exc:
                raise classify_rebuild_error(exc) from exc
