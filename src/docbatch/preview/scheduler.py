"""Visibility-driven page preview scheduling.

Pages are rendered only once they are reported visible, in the order they
became visible, one render at a time. Visibility updates are applied
synchronously so a drain that resumes after a render always sees the
latest state.
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import AsyncIterable, Callable
from dataclasses import dataclass

from docbatch.config.constants import DEFAULT_PREVIEW_WIDTH
from docbatch.config.settings import DocbatchSettings
from docbatch.converters.base import ConversionPrimitive, DocumentInfo, PagePreview
from docbatch.exceptions import StateError
from docbatch.utils.logging import get_logger

log = get_logger(__name__)

PreviewHandler = Callable[[PagePreview], None]


@dataclass(frozen=True)
class VisibilityEvent:
    """A page entered or left the viewport."""

    page_index: int
    visible: bool


class PreviewCache:
    """Rendered previews of the open document, keyed by page index."""

    def __init__(self) -> None:
        self._previews: dict[int, PagePreview] = {}

    def get(self, page_index: int) -> PagePreview | None:
        return self._previews.get(page_index)

    def put(self, preview: PagePreview) -> None:
        self._previews[preview.page_index] = preview

    def pages(self) -> list[int]:
        return sorted(self._previews)

    def clear(self) -> None:
        self._previews.clear()

    def __contains__(self, page_index: int) -> bool:
        return page_index in self._previews

    def __len__(self) -> int:
        return len(self._previews)


@dataclass
class _OpenDocument:
    file_id: str
    data: bytes
    from_format: str
    page_count: int | None
    generation: int


class PreviewScheduler:
    """Renders the pages a user is looking at.

    A page gaining visibility is claimed as loaded and queued; a single
    drain loop renders queued pages in FIFO order, skipping pages that
    are cached or no longer visible by the time they are dequeued. A
    failed render releases the claim so the page can be retried. Renders
    finishing after a document switch are dropped.
    """

    def __init__(
        self,
        converter: ConversionPrimitive,
        target_width: int = DEFAULT_PREVIEW_WIDTH,
        on_preview: PreviewHandler | None = None,
    ) -> None:
        """Initialize the scheduler.

        Args:
            converter: Engine providing single-page renders
            target_width: Preview width in pixels
            on_preview: Display hook, called for a fresh preview whose page is visible
        """
        self.converter = converter
        self.target_width = target_width
        self.on_preview = on_preview
        self.cache = PreviewCache()

        self._visible: set[int] = set()
        self._loaded: set[int] = set()
        self._queue: deque[int] = deque()
        self._draining = False
        self._drain_task: asyncio.Task | None = None
        self._render_lock = asyncio.Lock()
        self._generation = 0
        self._doc: _OpenDocument | None = None

    @classmethod
    def from_settings(
        cls,
        converter: ConversionPrimitive,
        settings: DocbatchSettings,
        on_preview: PreviewHandler | None = None,
    ) -> PreviewScheduler:
        return cls(converter, settings.preview.target_width, on_preview)

    @property
    def visible(self) -> frozenset[int]:
        return frozenset(self._visible)

    @property
    def loaded(self) -> frozenset[int]:
        return frozenset(self._loaded)

    @property
    def queued(self) -> list[int]:
        return list(self._queue)

    @property
    def is_draining(self) -> bool:
        return self._draining

    @property
    def document_id(self) -> str | None:
        return self._doc.file_id if self._doc else None

    @property
    def page_count(self) -> int | None:
        return self._doc.page_count if self._doc else None

    # ------------------------------------------------------------------
    # Document lifecycle
    # ------------------------------------------------------------------

    def _reset(self) -> None:
        self._generation += 1
        self._visible.clear()
        self._loaded.clear()
        self._queue.clear()
        self.cache.clear()
        self._doc = None

    async def open_document(
        self,
        file_id: str,
        data: bytes,
        from_format: str,
        page_count: int | None = None,
    ) -> DocumentInfo | None:
        """Make a document the active one, discarding all state of the previous one.

        Args:
            file_id: Identity of the document
            data: Document bytes
            from_format: Source extension without dot
            page_count: Known page count; looked up via the converter when omitted

        Returns:
            Document info, or None when the page count could not be determined
        """
        self._reset()
        generation = self._generation
        self._doc = _OpenDocument(
            file_id=file_id,
            data=data,
            from_format=from_format.lower().lstrip("."),
            page_count=page_count,
            generation=generation,
        )
        log.debug("Preview document opened", file_id=file_id)

        if page_count is not None:
            return DocumentInfo(page_count=page_count)

        try:
            info = await self.converter.get_document_info(data, self._doc.from_format)
        except Exception as e:
            log.warning("Failed to read document info", file_id=file_id, error=str(e))
            return None

        if self._doc is not None and self._doc.generation == generation:
            self._doc.page_count = info.page_count
        return info

    def close_document(self) -> None:
        """Forget the active document and every preview of it."""
        if self._doc is not None:
            log.debug("Preview document closed", file_id=self._doc.file_id)
        self._reset()

    # ------------------------------------------------------------------
    # Visibility
    # ------------------------------------------------------------------

    def set_visible(self, page_index: int, visible: bool) -> None:
        """Apply a visibility change. Must be called from the event loop."""
        if self._doc is None:
            log.debug("Visibility change without open document ignored", page=page_index)
            return
        count = self._doc.page_count
        if page_index < 0 or (count is not None and page_index >= count):
            log.warning("Visibility change for unknown page ignored", page=page_index)
            return

        if not visible:
            self._visible.discard(page_index)
            return

        self._visible.add(page_index)
        if page_index in self._loaded:
            return
        # Claim before rendering so repeated signals cannot enqueue twice
        self._loaded.add(page_index)
        if page_index not in self._queue:
            self._queue.append(page_index)
        self._trigger_drain()

    def handle(self, event: VisibilityEvent) -> None:
        self.set_visible(event.page_index, event.visible)

    async def consume(self, events: AsyncIterable[VisibilityEvent]) -> None:
        """Apply visibility events from a channel until it is exhausted."""
        async for event in events:
            self.handle(event)

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def _trigger_drain(self) -> None:
        if self._draining:
            return
        self._draining = True
        self._drain_task = asyncio.ensure_future(self._drain())

    async def drain(self) -> None:
        """Wait until the queue is empty and no drain is running."""
        while self._draining and self._drain_task is not None:
            await asyncio.shield(self._drain_task)
        if self._queue:
            self._trigger_drain()
            await asyncio.shield(self._drain_task)

    async def _drain(self) -> None:
        try:
            while self._queue:
                page_index = self._queue.popleft()
                if page_index in self.cache:
                    continue
                if page_index not in self._visible:
                    # Release the claim so scrolling back re-admits the page
                    self._loaded.discard(page_index)
                    log.debug("Page no longer visible, skipped", page=page_index)
                    continue
                await self._render(page_index)
        finally:
            self._draining = False

    async def _render(self, page_index: int) -> PagePreview | None:
        doc = self._doc
        if doc is None:
            return None

        async with self._render_lock:
            if doc.generation != self._generation:
                return None
            if page_index in self.cache:
                return self.cache.get(page_index)
            try:
                preview = await self.converter.render_page(
                    doc.data, doc.from_format, page_index, self.target_width
                )
            except Exception as e:
                if doc.generation == self._generation:
                    self._loaded.discard(page_index)
                    log.warning(
                        "Page render failed",
                        file_id=doc.file_id,
                        page=page_index,
                        error=str(e),
                    )
                return None

        if doc.generation != self._generation:
            log.debug("Stale page render discarded", file_id=doc.file_id, page=page_index)
            return None

        self.cache.put(preview)
        log.debug(
            "Page rendered",
            file_id=doc.file_id,
            page=page_index,
            width=preview.width,
            height=preview.height,
        )
        if self.on_preview is not None and page_index in self._visible:
            try:
                self.on_preview(preview)
            except Exception as e:
                # The preview stays cached; the drain moves on to the next page
                log.warning(
                    "Preview hook failed",
                    file_id=doc.file_id,
                    page=page_index,
                    error=str(e),
                )
        return preview

    async def load_all(self) -> int:
        """Render every page of the active document in page order.

        Visibility is ignored; cached pages are skipped.

        Returns:
            Number of pages rendered by this call
        """
        doc = self._doc
        if doc is None:
            raise StateError("No document open")
        if doc.page_count is None:
            raise StateError(f"Page count unknown for {doc.file_id}")

        rendered = 0
        for page_index in range(doc.page_count):
            if doc.generation != self._generation:
                break
            if page_index in self.cache:
                continue
            self._loaded.add(page_index)
            if await self._render(page_index) is not None:
                rendered += 1

        log.info("Loaded all pages", file_id=doc.file_id, rendered=rendered)
        return rendered
