"""docbatch command-line entry point."""

from typing import Annotated

import typer
from dotenv import load_dotenv
from rich.console import Console

from docbatch import __version__
from docbatch.cli.commands import convert, formats

# DOCBATCH_* overrides may live in .env
load_dotenv()

app = typer.Typer(
    name="docbatch",
    help="Batch document conversion with size-bounded zip output.",
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
    context_settings={"help_option_names": ["-h", "--help"]},
)

console = Console()

app.command(name="convert", help="Convert documents to one target format.")(convert)
app.command(name="formats", help="List supported input and output formats.")(formats)


def version_callback(value: bool) -> None:
    """Handle --version."""
    if value:
        console.print(f"[bold blue]docbatch[/bold blue] version [green]{__version__}[/green]")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """docbatch - convert many documents at once.

    Every file is converted to the same target format; files already in that
    format are copied as-is. Results are packed into zip archives that stay
    under a size ceiling.
    """


if __name__ == "__main__":
    app()
