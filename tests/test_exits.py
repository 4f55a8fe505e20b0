import pytest
import typer

from idxops.cli.common.exits import (
    EXIT_FAILED,
    EXIT_INTERRUPTED,
    EXIT_OK,
    exit_for_report,
    interrupted_exit,
    report_exit_code,
)
from idxops.core.indexes import RebuildCandidate, RebuildOutcome, RebuildStatus
from idxops.core.maintenance import MaintenanceReport


def _report(*statuses: RebuildStatus) -> MaintenanceReport:
    return MaintenanceReport(
        outcomes=tuple(
            RebuildOutcome(candidate=RebuildCandidate(table="T", index=f"I{i}"), status=s)
            for i, s in enumerate(statuses)
        )
    )


def test_report_exit_code_counts_offline_success_as_ok():
    assert report_exit_code(_report()) == EXIT_OK
    assert (
        report_exit_code(_report(RebuildStatus.SUCCEEDED, RebuildStatus.SUCCEEDED_OFFLINE))
        == EXIT_OK
    )


def test_report_exit_code_any_failure_fails():
    assert report_exit_code(_report(RebuildStatus.SUCCEEDED, RebuildStatus.FAILED)) == EXIT_FAILED


def test_exit_for_report_raises_matching_exit():
    with pytest.raises(typer.Exit) as info:
        exit_for_report(_report(RebuildStatus.FAILED))

    assert info.value.exit_code == EXIT_FAILED


def test_interrupted_exit_chains_keyboard_interrupt():
    original = KeyboardInterrupt()

    with pytest.raises(typer.Exit) as info:
        interrupted_exit(original)

    assert info.value.exit_code == EXIT_INTERRUPTED
    assert info.value.__cause__ is original
