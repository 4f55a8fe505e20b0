"""CLI application for SQL Server index maintenance."""

import typer

from idxops.cli.commands.indexes import app as indexes_app

app = typer.Typer(
    help="idxops - resumable SQL Server index maintenance",
    no_args_is_help=True,
)

app.add_typer(
    indexes_app, name="indexes", help="Scan / rebuild fragmented indexes."
)


if __name__ == "__main__":
    app()
