"""Typer parameter callbacks."""

import typer

from docbatch.config.constants import OUTPUT_FORMATS


def validate_output_format(value: str | None) -> str | None:
    """Normalize ``--to`` and reject formats that cannot be produced."""
    if value is None:
        return None
    normalized = value.lower().lstrip(".")
    if normalized not in OUTPUT_FORMATS:
        raise typer.BadParameter(
            f"Invalid output format '{value}'. Options: {', '.join(sorted(OUTPUT_FORMATS))}"
        )
    return normalized


def validate_archive_name(value: str | None) -> str | None:
    """Reject archive base names that would escape the output directory."""
    if value is None:
        return None
    name = value.strip()
    if name.lower().endswith(".zip"):
        name = name[:-4]
    if not name or "/" in name or "\\" in name or name in (".", ".."):
        raise typer.BadParameter(f"Invalid archive name '{value}'")
    return name
