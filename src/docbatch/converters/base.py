"""Conversion primitive interface and data classes."""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class ProgressEvent:
    """Progress reported by the converter during a single conversion.

    ``percent`` never decreases within one conversion call.
    """

    phase: str
    percent: float
    message: str


ProgressCallback = Callable[[ProgressEvent], None]


@dataclass(frozen=True)
class PagePreview:
    """A rendered page: raw pixel buffer plus its dimensions."""

    page_index: int
    data: bytes
    width: int
    height: int


@dataclass(frozen=True)
class DocumentInfo:
    """Basic facts about a document needed to drive previews."""

    page_count: int


class ConversionPrimitive(Protocol):
    """The document conversion engine.

    One instance is shared by a batch. Implementations hold heavy engine
    state, so callers must not run two conversions on the same instance
    at once.
    """

    async def convert(
        self,
        data: bytes,
        from_format: str,
        to_format: str,
        on_progress: ProgressCallback | None = None,
    ) -> bytes:
        """Convert document bytes from one format to another.

        Args:
            data: Source document bytes
            from_format: Source extension without dot (e.g. ``docx``)
            to_format: Target extension without dot (e.g. ``pdf``)
            on_progress: Called for every progress event

        Returns:
            Converted document bytes
        """
        ...

    async def render_page(
        self,
        data: bytes,
        from_format: str,
        page_index: int,
        target_width: int,
    ) -> PagePreview:
        """Render one page of a document to pixels.

        Args:
            data: Source document bytes
            from_format: Source extension without dot
            page_index: Zero-based page index
            target_width: Requested width in pixels; height keeps the aspect ratio

        Returns:
            The rendered page
        """
        ...

    async def get_document_info(self, data: bytes, from_format: str) -> DocumentInfo:
        """Inspect a document without converting it."""
        ...
