"""Configuration module for docbatch."""

from docbatch.config.settings import (
    ArchiveConfig,
    BatchConfig,
    ConverterConfig,
    DocbatchSettings,
    PreviewConfig,
    get_settings,
    reload_settings,
)

__all__ = [
    "DocbatchSettings",
    "BatchConfig",
    "ArchiveConfig",
    "PreviewConfig",
    "ConverterConfig",
    "get_settings",
    "reload_settings",
]
