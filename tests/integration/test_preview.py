"""Preview scheduling against PyMuPDF rendering."""

import fitz

from docbatch.converters.libreoffice import LibreOfficeConverter
from docbatch.preview.scheduler import PreviewScheduler, VisibilityEvent


def _pdf(pages: int) -> bytes:
    doc = fitz.open()
    for i in range(pages):
        page = doc.new_page(width=300, height=400)
        page.insert_text((50, 50), f"Page {i + 1}")
    data = doc.tobytes()
    doc.close()
    return data


class TestPreviewWithPdf:
    """Lazy previews of a real PDF."""

    async def test_visible_pages_then_load_all(self):
        """Test visible pages render first and load_all completes the rest."""
        shown = []
        scheduler = PreviewScheduler(
            LibreOfficeConverter(soffice_path="soffice"),
            target_width=150,
            on_preview=shown.append,
        )
        info = await scheduler.open_document("report", _pdf(4), "pdf")
        assert info.page_count == 4

        async def events():
            yield VisibilityEvent(2, True)
            yield VisibilityEvent(0, True)

        await scheduler.consume(events())
        await scheduler.drain()

        assert [p.page_index for p in shown] == [2, 0]
        assert all(p.width == 150 and p.height == 200 for p in shown)

        rendered = await scheduler.load_all()
        assert rendered == 2
        assert scheduler.cache.pages() == [0, 1, 2, 3]
