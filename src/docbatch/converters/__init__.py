"""Conversion primitives for docbatch."""

from docbatch.converters.base import (
    ConversionPrimitive,
    DocumentInfo,
    PagePreview,
    ProgressCallback,
    ProgressEvent,
)
from docbatch.converters.libreoffice import LibreOfficeConverter

__all__ = [
    "ConversionPrimitive",
    "DocumentInfo",
    "LibreOfficeConverter",
    "PagePreview",
    "ProgressCallback",
    "ProgressEvent",
]
