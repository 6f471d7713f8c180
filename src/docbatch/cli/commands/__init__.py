"""CLI commands."""

from docbatch.cli.commands.convert import convert
from docbatch.cli.commands.formats import formats

__all__ = ["convert", "formats"]
