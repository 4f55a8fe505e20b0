"""Application context management for the CLI."""

from dataclasses import dataclass, field

from idxops.cli.common.exits import EXIT_USAGE, die
from idxops.core.adapters.sqlserver import SqlServerIndexAdapter
from idxops.core.auth import CredentialNotFound, resolve_credentials
from idxops.core.checkpoint import CheckpointStore
from idxops.core.params import build_connection_params, target_key


@dataclass
class IndexAppContext:
    """Application context holding the target database and checkpoint store."""

    server: str
    database: str
    port: int
    driver: str | None
    credential: str | None
    store: CheckpointStore
    _adapter: SqlServerIndexAdapter | None = field(default=None, repr=False)

    @property
    def target(self) -> str:
        return f"{self.server},{self.port}/{self.database}"

    def adapter(self) -> SqlServerIndexAdapter:
        """Resolve credentials on first use and return the SQL Server adapter."""
        if self._adapter is None:
            if not self.credential:
                die(
                    "Missing credential reference. Use --credential or IDXOPS_CREDENTIAL.",
                    code=EXIT_USAGE,
                )
            try:
                creds = resolve_credentials(self.credential)
            except CredentialNotFound as exc:
                die(str(exc))
            params = build_connection_params(
                self.server,
                self.database,
                creds,
                port=self.port,
                driver=self.driver,
            )
            self._adapter = SqlServerIndexAdapter(params)
        return self._adapter


def build_index_context(
    server: str,
    database: str,
    *,
    port: int,
    driver: str | None,
    credential: str | None,
) -> IndexAppContext:
    """Build the context for index commands.

    Credentials are not resolved here so that checkpoint-only commands
    (status, reset) work without keyring access.
    """
    if not server.strip() or not database.strip():
        die("Server and database must not be empty.", code=EXIT_USAGE)
    store = CheckpointStore(target_key(server, port, database))
    return IndexAppContext(
        server=server.strip(),
        database=database.strip(),
        port=port,
        driver=driver,
        credential=credential,
        store=store,
    )
