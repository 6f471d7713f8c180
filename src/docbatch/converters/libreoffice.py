"""Conversion primitive backed by headless LibreOffice.

Documents are converted with ``soffice --convert-to``; page previews are
rendered from a PDF rendition with PyMuPDF.
"""

from __future__ import annotations

import asyncio
import hashlib
import shutil
import sys
import tempfile
from collections.abc import Callable
from pathlib import Path

import anyio

from docbatch.config.constants import DEFAULT_CONVERSION_TIMEOUT, DEFAULT_LIVENESS_INTERVAL
from docbatch.converters.base import DocumentInfo, PagePreview, ProgressCallback, ProgressEvent
from docbatch.exceptions import ConfigurationError, ConversionError
from docbatch.utils.logging import get_logger

log = get_logger(__name__)

# soffice --convert-to arguments that differ from the bare extension
_FILTERS = {
    "txt": "txt:Text",
    "html": "html:HTML",
}


class LibreOfficeConverter:
    """Convert documents with a LibreOffice installation.

    Initialization is lazy and single-flight: concurrent callers of
    :meth:`initialize` share one lookup of the ``soffice`` executable.
    """

    def __init__(
        self,
        soffice_path: str | None = None,
        timeout: int = DEFAULT_CONVERSION_TIMEOUT,
        liveness_interval: float = DEFAULT_LIVENESS_INTERVAL,
    ) -> None:
        """Initialize the converter.

        Args:
            soffice_path: Path to the soffice executable (default: search PATH)
            timeout: Hard limit in seconds for a single soffice run
            liveness_interval: Seconds between progress events while soffice runs
        """
        self.soffice_path = soffice_path
        self.timeout = timeout
        self.liveness_interval = liveness_interval
        self._init_lock = asyncio.Lock()
        self._ready = False
        # Last PDF rendition, keyed by source digest, reused across page renders
        self._pdf_cache: tuple[str, bytes] | None = None

    @property
    def is_ready(self) -> bool:
        return self._ready

    async def initialize(self) -> None:
        """Locate soffice. Idempotent."""
        async with self._init_lock:
            if self._ready:
                return
            path = self.soffice_path or self._find_soffice()
            if not path:
                raise ConfigurationError("LibreOffice not found (set converter.soffice_path)")
            self.soffice_path = path
            self._ready = True
            log.info("LibreOffice converter ready", soffice=path)

    def _find_soffice(self) -> str | None:
        if sys.platform == "win32":
            for candidate in (
                r"C:\Program Files\LibreOffice\program\soffice.exe",
                r"C:\Program Files (x86)\LibreOffice\program\soffice.exe",
            ):
                if Path(candidate).exists():
                    return candidate
        elif sys.platform == "darwin":
            app_path = "/Applications/LibreOffice.app/Contents/MacOS/soffice"
            if Path(app_path).exists():
                return app_path
        return shutil.which("soffice") or shutil.which("libreoffice")

    async def convert(
        self,
        data: bytes,
        from_format: str,
        to_format: str,
        on_progress: ProgressCallback | None = None,
    ) -> bytes:
        """Convert document bytes with soffice.

        Progress is reported at phase boundaries (loading, converting, complete)
        and every ``liveness_interval`` seconds while soffice is still running.
        If the awaiting task is cancelled, the soffice process is killed.
        """
        await self.initialize()

        def report(phase: str, percent: float, message: str) -> None:
            if on_progress is not None:
                on_progress(ProgressEvent(phase=phase, percent=percent, message=message))

        report("loading", 0, "Loading document")

        with tempfile.TemporaryDirectory(prefix="docbatch-") as temp_dir:
            work = Path(temp_dir)
            source = work / f"source.{from_format}"
            out_dir = work / "out"
            profile_dir = work / "profile"
            await anyio.Path(source).write_bytes(data)

            cmd = [
                str(self.soffice_path),
                "--headless",
                f"-env:UserInstallation={profile_dir.as_uri()}",
                "--convert-to",
                _FILTERS.get(to_format, to_format),
                "--outdir",
                str(out_dir),
                str(source),
            ]
            step = f"Converting {from_format} to {to_format}"
            report("converting", 10, step)
            log.debug("Running LibreOffice", command=" ".join(cmd))

            await self._run(
                cmd,
                source.name,
                lambda elapsed: report("converting", 10, f"{step} ({elapsed:.0f}s elapsed)"),
            )

            produced = out_dir / f"source.{to_format}"
            if not produced.exists():
                candidates = sorted(out_dir.glob("*")) if out_dir.exists() else []
                if not candidates:
                    raise ConversionError(source.name, "LibreOffice did not produce output file")
                produced = candidates[0]

            result = await anyio.Path(produced).read_bytes()

        report("complete", 100, "Conversion complete")
        return result

    async def _run(
        self,
        cmd: list[str],
        filename: str,
        on_alive: Callable[[float], None] | None = None,
    ) -> None:
        """Run soffice, calling ``on_alive`` with the elapsed time while it works."""
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        loop = asyncio.get_running_loop()
        started = loop.time()
        communicate = asyncio.ensure_future(process.communicate())
        try:
            while True:
                remaining = self.timeout - (loop.time() - started)
                if remaining <= 0:
                    raise TimeoutError()
                done, _ = await asyncio.wait(
                    {communicate}, timeout=min(self.liveness_interval, remaining)
                )
                if done:
                    _, stderr = communicate.result()
                    break
                if on_alive is not None:
                    on_alive(loop.time() - started)
        except TimeoutError as e:
            communicate.cancel()
            process.kill()
            await process.wait()
            raise ConversionError(
                filename, f"LibreOffice conversion timed out after {self.timeout}s"
            ) from e
        except asyncio.CancelledError:
            communicate.cancel()
            process.kill()
            await process.wait()
            raise

        if process.returncode != 0:
            detail = stderr.decode(errors="replace").strip() if stderr else "Unknown error"
            raise ConversionError(filename, f"LibreOffice error: {detail}")

    async def _as_pdf(self, data: bytes, from_format: str) -> bytes:
        if from_format == "pdf":
            return data
        digest = hashlib.sha256(data).hexdigest()
        if self._pdf_cache is not None and self._pdf_cache[0] == digest:
            return self._pdf_cache[1]
        pdf = await self.convert(data, from_format, "pdf")
        self._pdf_cache = (digest, pdf)
        return pdf

    async def render_page(
        self,
        data: bytes,
        from_format: str,
        page_index: int,
        target_width: int,
    ) -> PagePreview:
        """Render one page as RGB pixels scaled to ``target_width``."""
        pdf = await self._as_pdf(data, from_format)
        return await anyio.to_thread.run_sync(_render_pdf_page, pdf, page_index, target_width)

    async def get_document_info(self, data: bytes, from_format: str) -> DocumentInfo:
        """Count pages of the document's PDF rendition."""
        pdf = await self._as_pdf(data, from_format)
        page_count = await anyio.to_thread.run_sync(_count_pdf_pages, pdf)
        return DocumentInfo(page_count=page_count)


def _render_pdf_page(pdf: bytes, page_index: int, target_width: int) -> PagePreview:
    import fitz  # PyMuPDF

    with fitz.open(stream=pdf, filetype="pdf") as doc:
        if not 0 <= page_index < len(doc):
            raise ConversionError(
                f"page {page_index}", f"Page index out of range (document has {len(doc)} pages)"
            )
        page = doc[page_index]
        zoom = target_width / page.rect.width
        pix = page.get_pixmap(matrix=fitz.Matrix(zoom, zoom), alpha=False)
        return PagePreview(
            page_index=page_index,
            data=bytes(pix.samples),
            width=pix.width,
            height=pix.height,
        )


def _count_pdf_pages(pdf: bytes) -> int:
    import fitz

    with fitz.open(stream=pdf, filetype="pdf") as doc:
        return len(doc)
