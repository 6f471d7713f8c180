"""Utility module for docbatch."""

from docbatch.utils.fs import (
    collect_files,
    format_size,
    get_extension,
    is_hidden,
    is_supported_input,
    replace_extension,
)

__all__ = [
    "collect_files",
    "format_size",
    "get_extension",
    "is_hidden",
    "is_supported_input",
    "replace_extension",
]
