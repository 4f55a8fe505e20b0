"""Progress display for index rebuild jobs."""

from __future__ import annotations

from rich.console import Group
from rich.live import Live
from rich.markup import escape
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)

from idxops.cli.common.output import console, status_style
from idxops.core.indexes import RebuildCandidate, RebuildOutcome, RebuildStatus

_MAX_LABEL_WIDTH = 72


def _truncate(text: str, max_len: int) -> str:
    """Return text capped at max_len characters using an ASCII ellipsis."""
    if max_len <= 3 or len(text) <= max_len:
        return text[:max_len]
    return f"{text[: max_len - 3]}..."


def _display_label(position: int, total: int, candidate: RebuildCandidate) -> str:
    """Render `[pos/total] schema.table.index` with a right-aligned counter."""
    width = len(str(total))
    counter = f"[{str(position + 1).rjust(width)}/{total}]"
    return f"{counter} {_truncate(candidate.label, _MAX_LABEL_WIDTH)}"


class RebuildProgress:
    """
    Live progress for a rebuild job. Shows:
      - an overall progress bar (x/y attempted + failures)
      - a spinner row for the index currently being rebuilt

    Each finished candidate is also logged as a permanent line above the
    live display, so the console keeps a per-index record of the run.
    """

    def __init__(self, total: int, completed: int = 0, failures: int = 0):
        self.failures = failures
        self._overall = Progress(
            TextColumn("[bold]Overall[/]"),
            BarColumn(),
            TaskProgressColumn(),
            TextColumn("failures=[bold red]{task.fields[failures]}[/]"),
            TimeElapsedColumn(),
            console=console,
        )
        self._current = Progress(
            SpinnerColumn(),
            TextColumn("[bold]{task.fields[label]}[/]"),
            TextColumn("[meta]{task.fields[mode]}[/]"),
            TimeElapsedColumn(),
            console=console,
        )
        self._overall_id = self._overall.add_task(
            "overall",
            total=max(total, 1),
            completed=completed,
            failures=failures,
        )
        self._current_id: int | None = None
        self._live = Live(
            Group(self._overall, self._current),
            console=console,
            refresh_per_second=10,
            transient=True,
        )

    def __enter__(self) -> RebuildProgress:
        self._live.__enter__()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self._live.__exit__(exc_type, exc, tb)

    def on_start(self, position: int, total: int, candidate: RebuildCandidate) -> None:
        """Show the candidate that is about to be rebuilt."""
        if self._current_id is not None:
            self._current.remove_task(self._current_id)
        self._current_id = self._current.add_task(
            "",
            total=1,
            label=escape(_display_label(position, total, candidate)),
            mode="ALTER INDEX ... REBUILD",
        )

    def on_outcome(self, position: int, total: int, outcome: RebuildOutcome) -> None:
        """Log the outcome and advance the overall bar."""
        if self._current_id is not None:
            self._current.update(self._current_id, completed=1)

        if outcome.status == RebuildStatus.FAILED:
            self.failures += 1
            self._overall.update(self._overall_id, failures=self.failures)

        style = status_style(outcome.status.value)
        line = (
            f"{escape(_display_label(position, total, outcome.candidate))} "
            f"[{style}]{outcome.status.value}[/{style}]"
        )
        if outcome.error:
            line = f"{line} [meta]{escape(outcome.error)}[/]"
        console.print(line)

        self._overall.advance(self._overall_id, 1)
