"""List supported formats."""

from rich.table import Table

from docbatch.config.constants import OUTPUT_FORMATS, SUPPORTED_INPUT_FORMATS
from docbatch.utils.logging import get_console

console = get_console()


def formats() -> None:
    """Show which extensions can be read and which can be produced."""
    table = Table(title="Supported Formats")
    table.add_column("Extension", style="bold")
    table.add_column("Input", justify="center")
    table.add_column("Output", justify="center")

    for ext in sorted(SUPPORTED_INPUT_FORMATS | OUTPUT_FORMATS):
        table.add_row(
            f".{ext}",
            "[green]yes[/green]" if ext in SUPPORTED_INPUT_FORMATS else "[dim]-[/dim]",
            "[green]yes[/green]" if ext in OUTPUT_FORMATS else "[dim]-[/dim]",
        )

    console.print(table)
