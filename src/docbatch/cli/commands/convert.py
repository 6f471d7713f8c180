"""Convert command for batch conversion into zip archives."""

import asyncio
import sys
from pathlib import Path
from typing import Annotated, Any

import typer
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from docbatch.archive.builder import ArchiveBuilder
from docbatch.cli.callbacks import validate_archive_name, validate_output_format
from docbatch.config.constants import MIB
from docbatch.config.settings import DocbatchSettings, get_settings
from docbatch.converters.libreoffice import LibreOfficeConverter
from docbatch.core.orchestrator import BatchOrchestrator, BatchResult, BatchSummary
from docbatch.core.state import BatchProgress
from docbatch.exceptions import AllConversionsFailedError, DocbatchError
from docbatch.storage.blob_store import BlobStore, FileBlobStore, MemoryBlobStore
from docbatch.utils.fs import (
    collect_files,
    format_size,
    get_extension,
    is_supported_input,
    replace_extension,
)
from docbatch.utils.logging import get_console, get_logger, set_log_output, setup_task_logging

console = get_console()
log = get_logger(__name__)

_MAX_LISTED = 10


def convert(
    inputs: Annotated[
        list[Path],
        typer.Argument(
            help="Files or directories to convert.",
            exists=True,
            resolve_path=True,
        ),
    ],
    to: Annotated[
        str | None,
        typer.Option(
            "--to",
            "-t",
            help="Target format (default from config, pdf).",
            callback=validate_output_format,
        ),
    ] = None,
    output: Annotated[
        Path | None,
        typer.Option(
            "--output",
            "-o",
            help="Directory for the produced archives.",
            file_okay=False,
            dir_okay=True,
            resolve_path=True,
        ),
    ] = None,
    recursive: Annotated[
        bool,
        typer.Option("--recursive", "-r", help="Recursively process subdirectories."),
    ] = False,
    include: Annotated[
        str | None,
        typer.Option("--include", help="File pattern to include (glob syntax)."),
    ] = None,
    exclude: Annotated[
        str | None,
        typer.Option("--exclude", help="File pattern to exclude (glob syntax)."),
    ] = None,
    max_retries: Annotated[
        int | None,
        typer.Option("--max-retries", min=0, help="Retries after a failed conversion attempt."),
    ] = None,
    stall_timeout: Annotated[
        float | None,
        typer.Option(
            "--stall-timeout", min=0.1, help="Seconds without progress before an attempt fails."
        ),
    ] = None,
    max_archive_size: Annotated[
        int | None,
        typer.Option("--max-archive-size", min=1, help="Archive size ceiling in MiB."),
    ] = None,
    name: Annotated[
        str | None,
        typer.Option(
            "--name", help="Archive base name (without .zip).", callback=validate_archive_name
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable verbose output."),
    ] = False,
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", help="Show what would be converted without converting."),
    ] = False,
) -> None:
    """Convert documents to one format and pack the results into zip archives.

    Examples:
        docbatch convert report.docx slides.pptx
        docbatch convert ./documents -r --to pdf -o ./out
        docbatch convert ./sheets --to xlsx --max-archive-size 100
    """
    settings = get_settings()
    _, log_path = setup_task_logging(
        settings.log_dir,
        prefix="convert",
        verbose=verbose,
        file_level="DEBUG" if verbose else settings.log_level,
    )

    output_format = to or settings.batch.default_output_format
    output_dir = output or Path.cwd()

    files = collect_files(inputs, recursive, include, exclude)
    log.info(
        "Convert command started",
        inputs=[str(p) for p in inputs],
        files=len(files),
        output_format=output_format,
        output_dir=str(output_dir),
        log_file=str(log_path),
    )

    if not files:
        console.print("[yellow]No files to process.[/yellow]")
        return

    if dry_run:
        _show_dry_run(files, output_format, output_dir)
        return

    overrides: dict[str, Any] = {}
    if max_retries is not None:
        overrides["max_retries"] = max_retries
    if stall_timeout is not None:
        overrides["stall_timeout"] = stall_timeout
    if max_archive_size is not None:
        overrides["max_archive_size"] = max_archive_size * MIB
    if name:
        overrides["archive_base_name"] = name

    try:
        summary, written = asyncio.run(
            _execute(files, output_format, output_dir, settings, overrides)
        )
    except KeyboardInterrupt:
        console.print("\n[yellow]Conversion interrupted.[/yellow]")
        raise typer.Exit(130) from None
    except AllConversionsFailedError as e:
        console.print(f"[red]Error:[/red] {e}")
        _print_failures([(err.filename, err.error) for err in e.errors])
        raise typer.Exit(1) from e
    except DocbatchError as e:
        console.print(f"[red]Error:[/red] {e}")
        log.error("Batch conversion failed", error=str(e))
        raise typer.Exit(1) from e

    _display_summary(summary, written)


def _create_store(settings: DocbatchSettings) -> BlobStore:
    if settings.storage_dir:
        return FileBlobStore(settings.storage_dir)
    return MemoryBlobStore()


async def _execute(
    files: list[Path],
    output_format: str,
    output_dir: Path,
    settings: DocbatchSettings,
    overrides: dict[str, Any],
) -> tuple[BatchSummary, list[Path]]:
    """Run the batch and write its archives."""
    converter = LibreOfficeConverter(
        soffice_path=settings.converter.soffice_path,
        timeout=settings.converter.timeout,
        liveness_interval=settings.converter.liveness_interval,
    )
    store = _create_store(settings)
    try:
        result = await _run_with_progress(
            converter, store, files, output_format, settings, overrides
        )
        builder = ArchiveBuilder(store, compression=settings.archive.compression)
        written = await builder.write(result.plan, output_dir)
    finally:
        await store.clear()
    return result.summary, written


async def _run_with_progress(
    converter: LibreOfficeConverter,
    store: BlobStore,
    files: list[Path],
    output_format: str,
    settings: DocbatchSettings,
    overrides: dict[str, Any],
) -> BatchResult:
    original_stderr = sys.stderr

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
        TextColumn("({task.completed}/{task.total})"),
        TimeElapsedColumn(),
        console=console,
        transient=False,
    ) as progress:
        bar = progress.add_task("[cyan]Converting files...", total=None)

        def on_progress(state: BatchProgress) -> None:
            progress.update(bar, completed=state.current, total=state.total)

        orchestrator = BatchOrchestrator.from_settings(
            converter,
            store,
            settings,
            output_format=output_format,
            on_progress=on_progress,
            **overrides,
        )
        job = orchestrator.submit((path.name, path) for path in files)
        progress.update(bar, total=job.total)

        # Live display swaps sys.stderr for a proxy that prints above the bar
        set_log_output(sys.stderr)

        try:
            return await orchestrator.run()
        except asyncio.CancelledError:
            await orchestrator.cancel()
            raise
        finally:
            set_log_output(original_stderr)


def _print_failures(failures: list[tuple[str, str]]) -> None:
    if not failures:
        return
    console.print()
    console.print("[bold red]Failed Files:[/bold red]")
    for filename, error in failures[:_MAX_LISTED]:
        console.print(f"  [dim]-[/dim] {filename}")
        console.print(f"    [dim]{error}[/dim]")
    if len(failures) > _MAX_LISTED:
        console.print(f"  [dim]... and {len(failures) - _MAX_LISTED} more[/dim]")


def _display_summary(summary: BatchSummary, written: list[Path]) -> None:
    """Display batch summary and produced archives."""
    console.print()
    table = Table(title="Batch Summary", show_header=False)
    table.add_column("Metric", style="bold")
    table.add_column("Value")

    table.add_row("Total Files", str(summary.total))
    table.add_row("Converted", f"[green]{summary.converted}[/green]")
    table.add_row("Copied", f"[green]{summary.copied}[/green]")
    table.add_row("Failed", f"[red]{summary.failed}[/red]")
    table.add_row("Skipped", f"[yellow]{summary.skipped}[/yellow]")
    if summary.total > 0:
        success_rate = (summary.converted + summary.copied) / summary.total * 100
        table.add_row("Success Rate", f"{success_rate:.1f}%")
    console.print(table)

    if written:
        console.print()
        console.print("[bold]Archives:[/bold]")
        for path in written:
            console.print(f"  [green]✓[/green] {path} ({format_size(path.stat().st_size)})")

    _print_failures([(f.filename, f.error) for f in summary.failures])


def _show_dry_run(files: list[Path], output_format: str, output_dir: Path) -> None:
    """Display the batch plan without executing."""
    console.print("\n[bold blue]Batch Plan (Dry Run)[/bold blue]\n")
    console.print(f"  [bold]Target Format:[/bold] {output_format}")
    console.print(f"  [bold]Output Directory:[/bold] {output_dir}")
    console.print()

    table = Table(show_header=True)
    table.add_column("File")
    table.add_column("Action")
    table.add_column("Output")

    for path in files:
        ext = get_extension(path.name)
        if not is_supported_input(path.name):
            table.add_row(path.name, "[yellow]skip (unsupported)[/yellow]", "-")
        elif ext == output_format:
            table.add_row(path.name, "copy", path.name)
        else:
            table.add_row(path.name, "convert", replace_extension(path.name, output_format))

    console.print(table)
    console.print()
