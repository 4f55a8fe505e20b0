"""Output formatting utilities for the CLI."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

import questionary
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.theme import Theme

from idxops.cli.common.tui_style import QUESTIONARY_STYLE_CONFIRM

_THEME = Theme(
    {
        "ok": "bold green",
        "warn": "yellow",
        "err": "bold red",
        "title": "bold cyan",
        "meta": "dim",
    }
)

console = Console(theme=_THEME)

_STATUS_STYLES = {
    "SUCCEEDED": "ok",
    "SUCCEEDED_OFFLINE": "warn",
    "FAILED": "err",
}


def status_style(status_value: str) -> str:
    """Return the theme style used to render a rebuild status."""
    return _STATUS_STYLES.get(status_value, "meta")


@dataclass(frozen=True)
class Out:
    """Output formatter for CLI messages and tables."""

    def info(self, msg: str) -> None:
        """Print an info message."""
        console.print(f"[title]›[/] {msg}")

    @contextmanager
    def status(self, msg: str):
        """Show a transient status spinner while work is in progress."""
        with console.status(msg, spinner="dots"):
            yield

    def success(self, msg: str) -> None:
        """Print a success message."""
        console.print(f"[ok]✓[/] {msg}")

    def warn(self, msg: str) -> None:
        """Print a warning message."""
        console.print(f"[warn]⚠[/] {msg}")

    def error(self, msg: str) -> None:
        """Print an error message."""
        console.print(f"[err]✗[/] {msg}")

    def header(self, title: str) -> None:
        """Print a header message."""
        console.print(f"[title]{title}[/]")

    def kv(self, items: Mapping[str, Any]) -> None:
        """Print key-value pairs."""
        for k, v in items.items():
            console.print(f"[meta]{k}[/]: {v}")

    def confirm(self, message: str, *, default: bool = False) -> bool:
        """
        Ask the user for confirmation before destructive work.

        Returns:
            True if the user confirms, False otherwise (including Ctrl-C).
        """
        console.print("[meta]Use y/n then Enter[/]")
        prompt = questionary.confirm(
            f"[idxops] {message}",
            default=default,
            style=QUESTIONARY_STYLE_CONFIRM,
            qmark="✦",
            auto_enter=False,
        )
        return bool(prompt.ask())

    def candidates_table(
        self, candidates: Iterable[Any], title: str = "Rebuild candidates"
    ) -> None:
        """
        Expects objects with .schema .table .index
        (like idxops.core.indexes.RebuildCandidate)
        """
        t = Table(title=title, show_lines=False)
        t.add_column("#", style="meta", no_wrap=True, justify="right")
        t.add_column("Schema", style="meta")
        t.add_column("Table", style="ok")
        t.add_column("Index")

        for pos, c in enumerate(candidates, start=1):
            t.add_row(str(pos), escape(c.schema), escape(c.table), escape(c.index))

        console.print(t)

    def outcomes_table(
        self, outcomes: Iterable[Any], title: str = "Rebuild results"
    ) -> None:
        """
        Expects objects with .candidate .status and optional .error
        (like idxops.core.indexes.RebuildOutcome)
        """
        t = Table(title=title, show_lines=False)
        t.add_column("Index", style="ok")
        t.add_column("Status")
        t.add_column("Error", style="err")

        for o in outcomes:
            status_value = o.status.value if hasattr(o.status, "value") else str(o.status)
            style = status_style(status_value)
            t.add_row(
                escape(o.candidate.label),
                f"[{style}]{status_value}[/{style}]",
                escape(str(getattr(o, "error", "") or "")),
            )

        console.print(t)


out = Out()
