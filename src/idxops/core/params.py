"""Job and connection parameters.

Parameters are validated once, up front, so that configuration mistakes
fail before any connection to the server is attempted.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from idxops.core.auth import Credentials

DEFAULT_THRESHOLD = 20
DEFAULT_PORT = 1433


class InvalidParameter(ValueError):
    """Raised when a job parameter is out of range."""


@dataclass(frozen=True)
class ConnectionParams:
    """
    Everything needed to open a connection to one database.

    Attributes:
        server: Host name (or `host\\instance`) of the SQL Server.
        database: Target database name.
        username: SQL login name.
        password: SQL login password. Never shown in repr().
        port: TCP port of the server.
        driver: ODBC driver name. None selects the best installed driver.
    """

    server: str
    database: str
    username: str
    password: str = field(repr=False)
    port: int = DEFAULT_PORT
    driver: str | None = None

    @property
    def key(self) -> str:
        """Identity of the target database, used to scope job checkpoints."""
        return target_key(self.server, self.port, self.database)


def target_key(server: str, port: int, database: str) -> str:
    """Return the `server,port/database` identity of a target database."""
    return f"{server.strip().lower()},{port}/{database.strip()}"


@dataclass(frozen=True)
class JobParams:
    """Selection and fallback settings for one maintenance job."""

    threshold: int = DEFAULT_THRESHOLD
    allow_offline_fallback: bool = False
    table_filter: str | None = None


def resolve_job_params(
    threshold: int = DEFAULT_THRESHOLD,
    *,
    allow_offline_fallback: bool = False,
    table_filter: str | None = None,
) -> JobParams:
    """Validate and default job parameters."""
    if threshold < 0 or threshold > 100:
        raise InvalidParameter(
            f"Threshold must be between 0 and 100 (got {threshold})."
        )
    table = (table_filter or "").strip() or None
    return JobParams(
        threshold=threshold,
        allow_offline_fallback=allow_offline_fallback,
        table_filter=table,
    )


def build_connection_params(
    server: str,
    database: str,
    credentials: Credentials,
    *,
    port: int = DEFAULT_PORT,
    driver: str | None = None,
) -> ConnectionParams:
    """Combine target settings with resolved credentials."""
    return ConnectionParams(
        server=server.strip(),
        database=database.strip(),
        username=credentials.username,
        password=credentials.password,
        port=port,
        driver=driver or None,
    )
