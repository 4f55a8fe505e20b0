"""Exit codes and exit helpers for the CLI.

EXIT_OK        every candidate rebuilt, or nothing to do
EXIT_FAILED    at least one rebuild failed, or a fatal connection/scan/
               credential/checkpoint error
EXIT_USAGE     invalid input, rejected before touching the server
EXIT_INTERRUPTED  Ctrl-C; the checkpoint is intact and the job can resume
"""

from typing import NoReturn

import typer

from idxops.cli.common.output import out
from idxops.core.maintenance import MaintenanceReport

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2
EXIT_INTERRUPTED = 130


def ok_exit(msg: str | None = None) -> NoReturn:
    """Exit successfully with an optional informational message."""
    if msg:
        out.info(msg)
    raise typer.Exit(EXIT_OK)


def warn_exit(msg: str) -> NoReturn:
    """Exit successfully after a warning (empty scan, dry-run)."""
    out.warn(msg)
    raise typer.Exit(EXIT_OK)


def die(msg: str, code: int = EXIT_FAILED) -> NoReturn:
    """Exit with an error message."""
    out.error(msg)
    raise typer.Exit(code)


def exit_from_exc(exc: Exception, *, message: str, code: int = EXIT_FAILED) -> NoReturn:
    """Print an error message and exit, chaining the original exception."""
    out.error(message)
    raise typer.Exit(code) from exc


def interrupted_exit(exc: BaseException) -> NoReturn:
    """Exit after Ctrl-C, pointing the user at the resume path."""
    out.warn("Interrupted. Run the same command again to resume.")
    raise typer.Exit(EXIT_INTERRUPTED) from exc


def report_exit_code(report: MaintenanceReport) -> int:
    """Return the process exit code for a finished maintenance job."""
    return EXIT_OK if report.ok else EXIT_FAILED


def exit_for_report(report: MaintenanceReport) -> NoReturn:
    """Print the job summary and exit with the matching code."""
    if report.ok:
        out.success(f"Rebuilt {report.succeeded} index(es)")
    else:
        out.error(f"{report.failed} of {len(report.outcomes)} index rebuild(s) failed")
    raise typer.Exit(report_exit_code(report))
