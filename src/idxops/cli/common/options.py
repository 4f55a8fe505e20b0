"""Common CLI options for the CLI."""

import typer

from idxops.core.params import DEFAULT_PORT, DEFAULT_THRESHOLD

ServerOpt = typer.Option(
    ...,
    "--server",
    "-s",
    envvar="IDXOPS_SERVER",
    help="SQL Server host name (or host\\instance)",
)

DatabaseOpt = typer.Option(
    ...,
    "--database",
    "-d",
    envvar="IDXOPS_DATABASE",
    help="Target database",
)

CredentialOpt = typer.Option(
    None,
    "--credential",
    "-c",
    envvar="IDXOPS_CREDENTIAL",
    help="Keyring credential reference (service or service/username)",
)

PortOpt = typer.Option(
    DEFAULT_PORT,
    "--port",
    envvar="IDXOPS_PORT",
    help="SQL Server TCP port",
)

DriverOpt = typer.Option(
    None,
    "--driver",
    envvar="IDXOPS_ODBC_DRIVER",
    help="ODBC driver name (default: best installed SQL Server driver)",
)

ThresholdOpt = typer.Option(
    DEFAULT_THRESHOLD,
    "--threshold",
    "-t",
    help="Minimum fragmentation percent (0-100) for an index to be rebuilt",
)

TableOpt = typer.Option(
    None,
    "--table",
    help="Only consider indexes on this table (exact name)",
)

AllowOfflineOpt = typer.Option(
    False,
    "--allow-offline/--online-only",
    help="Fall back to an offline rebuild when ONLINE = ON is not supported",
)

ConfirmOpt = typer.Option(
    True,
    "--confirm/--no-confirm",
    help="Ask for confirmation before rebuilding indexes",
)

DryRunOpt = typer.Option(
    False,
    "--dry-run",
    help="Show which indexes would be rebuilt, but don't rebuild anything",
)

RestartOpt = typer.Option(
    False,
    "--restart",
    help="Discard an existing checkpoint and start a fresh job",
)
