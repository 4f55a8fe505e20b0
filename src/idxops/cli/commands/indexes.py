"""Commands for fragmented index maintenance."""

import typer

from idxops.cli.common.context import IndexAppContext, build_index_context
from idxops.cli.common.exits import (
    EXIT_USAGE,
    die,
    exit_for_report,
    exit_from_exc,
    interrupted_exit,
    ok_exit,
    warn_exit,
)
from idxops.cli.common.options import (
    AllowOfflineOpt,
    ConfirmOpt,
    CredentialOpt,
    DatabaseOpt,
    DriverOpt,
    DryRunOpt,
    PortOpt,
    RestartOpt,
    ServerOpt,
    TableOpt,
    ThresholdOpt,
)
from idxops.cli.common.output import out
from idxops.cli.common.progress import RebuildProgress
from idxops.core.checkpoint import CheckpointError, JobCheckpoint
from idxops.core.indexes import ScanError, scan_candidates
from idxops.core.maintenance import process_checkpoint, start_or_resume
from idxops.core.params import InvalidParameter, JobParams, resolve_job_params

app = typer.Typer(
    help="Find and rebuild fragmented indexes",
    no_args_is_help=False,
    invoke_without_command=True,
)


@app.callback()
def _init(
    ctx: typer.Context,
    server: str = ServerOpt,
    database: str = DatabaseOpt,
    credential: str | None = CredentialOpt,
    port: int = PortOpt,
    driver: str | None = DriverOpt,
):
    """Initialize the target database context."""
    ctx.obj = build_index_context(
        server, database, port=port, driver=driver, credential=credential
    )
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit(0)


def _job_params_or_exit(
    threshold: int, allow_offline: bool, table: str | None
) -> JobParams:
    try:
        return resolve_job_params(
            threshold, allow_offline_fallback=allow_offline, table_filter=table
        )
    except InvalidParameter as exc:
        exit_from_exc(exc, message=str(exc), code=EXIT_USAGE)


def _load_checkpoint_or_exit(appctx: IndexAppContext) -> JobCheckpoint | None:
    try:
        return appctx.store.load()
    except CheckpointError as exc:
        exit_from_exc(
            exc,
            message=f"{exc}\nInspect the file or discard it with `idxops indexes reset`.",
        )


def _describe_job(job: JobParams) -> dict[str, object]:
    return {
        "Threshold": f"{job.threshold}%",
        "Table filter": job.table_filter or "(all tables)",
        "Offline fallback": "allowed" if job.allow_offline_fallback else "disabled",
    }


@app.command()
def scan(
    ctx: typer.Context,
    threshold: int = ThresholdOpt,
    table: str | None = TableOpt,
):
    """
    List indexes whose fragmentation is at or above the threshold.
    """
    appctx: IndexAppContext = ctx.obj
    job = _job_params_or_exit(threshold, False, table)
    adapter = appctx.adapter()

    try:
        with out.status(f"Scanning {appctx.target}..."):
            candidates = scan_candidates(adapter, job.threshold, job.table_filter)
    except ScanError as exc:
        exit_from_exc(exc, message=str(exc))

    if not candidates:
        warn_exit("No fragmented indexes found")

    out.candidates_table(candidates, title=f"Indexes >= {job.threshold}% fragmented")


@app.command()
def rebuild(
    ctx: typer.Context,
    threshold: int = ThresholdOpt,
    table: str | None = TableOpt,
    allow_offline: bool = AllowOfflineOpt,
    confirm: bool = ConfirmOpt,
    dry_run: bool = DryRunOpt,
    restart: bool = RestartOpt,
):
    """
    Rebuild fragmented indexes one at a time, resuming an interrupted job.
    """
    appctx: IndexAppContext = ctx.obj
    store = appctx.store
    job = _job_params_or_exit(threshold, allow_offline, table)

    if restart and not dry_run and store.clear():
        out.warn("Discarded existing checkpoint")

    existing = None if restart else _load_checkpoint_or_exit(appctx)
    adapter = appctx.adapter()

    if dry_run:
        if existing is not None:
            out.info(
                f"Checkpoint found: {existing.next_index}/{len(existing.candidates)} done"
            )
            out.candidates_table(existing.pending, title="Pending (from checkpoint)")
        else:
            try:
                with out.status(f"Scanning {appctx.target}..."):
                    candidates = scan_candidates(adapter, job.threshold, job.table_filter)
            except ScanError as exc:
                exit_from_exc(exc, message=str(exc))
            out.candidates_table(candidates, title="Would rebuild")
        warn_exit("Dry-run enabled: no indexes were rebuilt")

    try:
        with out.status(f"Preparing job for {appctx.target}..."):
            cp, resumed = start_or_resume(adapter, store, job)
    except ScanError as exc:
        exit_from_exc(exc, message=str(exc))
    except CheckpointError as exc:
        exit_from_exc(exc, message=str(exc))
    except OSError as exc:
        exit_from_exc(exc, message=f"Could not write checkpoint: {exc}")

    if not cp.candidates:
        store.clear()
        warn_exit("No fragmented indexes found")

    out.header(f"Index maintenance for {appctx.target}")
    out.kv(_describe_job(cp.job))
    if resumed:
        out.warn(
            f"Resuming checkpoint: {cp.next_index}/{len(cp.candidates)} already attempted"
        )
        if cp.job != job:
            out.warn("Checkpoint was started with different options; using those")
    out.candidates_table(cp.pending, title="Pending")

    if confirm and not out.confirm(f"Rebuild {len(cp.pending)} index(es)?"):
        if not resumed:
            store.clear()
        ok_exit("Cancelled")

    failures = sum(1 for o in cp.outcomes if not o.ok)
    try:
        with RebuildProgress(
            total=len(cp.candidates), completed=cp.next_index, failures=failures
        ) as progress:
            report = process_checkpoint(
                adapter,
                store,
                cp,
                resumed=resumed,
                on_start=progress.on_start,
                on_outcome=progress.on_outcome,
            )
    except KeyboardInterrupt as exc:
        interrupted_exit(exc)
    except OSError as exc:
        exit_from_exc(exc, message=f"Could not write checkpoint: {exc}")

    out.outcomes_table(report.outcomes, title="Rebuild results")
    exit_for_report(report)


@app.command()
def status(ctx: typer.Context):
    """
    Show the checkpoint of an interrupted job.
    """
    appctx: IndexAppContext = ctx.obj
    cp = _load_checkpoint_or_exit(appctx)
    if cp is None:
        ok_exit(f"No job in progress for {appctx.target}")

    out.header(f"Checkpoint for {appctx.target}")
    out.kv(
        {
            **_describe_job(cp.job),
            "Progress": f"{cp.next_index}/{len(cp.candidates)}",
            "File": appctx.store.path,
        }
    )
    if cp.outcomes:
        out.outcomes_table(cp.outcomes, title="Attempted")
    out.candidates_table(cp.pending, title="Pending")


@app.command()
def reset(ctx: typer.Context, confirm: bool = ConfirmOpt):
    """
    Discard the checkpoint so the next rebuild starts with a fresh scan.
    """
    appctx: IndexAppContext = ctx.obj
    if not appctx.store.exists():
        ok_exit(f"No checkpoint for {appctx.target}")

    if confirm and not out.confirm("Discard the saved job progress?"):
        ok_exit("Cancelled")

    try:
        appctx.store.clear()
    except OSError as exc:
        die(f"Could not delete {appctx.store.path}: {exc}")
    out.success(f"Checkpoint for {appctx.target} removed")
