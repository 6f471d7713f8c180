"""Pytest configuration and fixtures."""

import asyncio
import tempfile
from pathlib import Path

import pytest

from docbatch.converters.base import DocumentInfo, PagePreview, ProgressCallback, ProgressEvent
from docbatch.exceptions import ConversionError
from docbatch.storage.blob_store import MemoryBlobStore


class FakeConverter:
    """Scripted stand-in for the conversion engine.

    ``script`` maps source bytes to the behaviors of successive attempts:

    - ``"ok"``: report progress and succeed (default once the script runs out)
    - ``"fail"``: raise :class:`ConversionError`
    - ``"stall"``: report one event, then go silent forever
    - ``"slow"``: keep reporting progress every ``step_delay`` for ``slow_steps`` steps
    - ``"block"``: report one event, then wait until :attr:`release` is set
    """

    def __init__(
        self,
        script: dict[bytes, list[str]] | None = None,
        sizes: dict[bytes, int] | None = None,
        step_delay: float = 0.01,
        slow_steps: int = 10,
        page_count: int = 5,
    ) -> None:
        self.script = {key: list(steps) for key, steps in (script or {}).items()}
        self.sizes = sizes or {}
        self.step_delay = step_delay
        self.slow_steps = slow_steps
        self.page_count = page_count

        self.calls: list[tuple[bytes, str, str]] = []
        self.started = asyncio.Event()
        self.release = asyncio.Event()

        self.render_calls: list[int] = []
        self.render_failures: set[int] = set()
        self.render_gates: dict[int, asyncio.Event] = {}
        self.info_calls = 0

    def output_for(self, data: bytes, to_format: str) -> bytes:
        if data in self.sizes:
            return b"x" * self.sizes[data]
        return to_format.encode() + b":" + data

    async def convert(
        self,
        data: bytes,
        from_format: str,
        to_format: str,
        on_progress: ProgressCallback | None = None,
    ) -> bytes:
        self.calls.append((data, from_format, to_format))
        self.started.set()
        steps = self.script.get(data)
        behavior = steps.pop(0) if steps else "ok"

        def report(percent: float, message: str) -> None:
            if on_progress is not None:
                on_progress(ProgressEvent(phase="converting", percent=percent, message=message))

        report(0, "Loading document")
        await asyncio.sleep(0)

        if behavior == "fail":
            raise ConversionError(from_format, "scripted failure")
        if behavior == "stall":
            await asyncio.sleep(3600)
        if behavior == "block":
            await self.release.wait()
        if behavior == "slow":
            for step in range(1, self.slow_steps + 1):
                await asyncio.sleep(self.step_delay)
                report(step * 100 / (self.slow_steps + 1), f"Step {step}")

        report(100, "Conversion complete")
        return self.output_for(data, to_format)

    async def render_page(
        self,
        data: bytes,
        from_format: str,
        page_index: int,
        target_width: int,
    ) -> PagePreview:
        self.render_calls.append(page_index)
        gate = self.render_gates.get(page_index)
        if gate is not None:
            await gate.wait()
        else:
            await asyncio.sleep(0)
        if page_index in self.render_failures:
            raise ConversionError(f"page {page_index}", "scripted render failure")
        return PagePreview(
            page_index=page_index,
            data=b"px%d" % page_index,
            width=target_width,
            height=target_width * 2,
        )

    async def get_document_info(self, data: bytes, from_format: str) -> DocumentInfo:
        self.info_calls += 1
        return DocumentInfo(page_count=self.page_count)


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def fake_converter() -> FakeConverter:
    """Converter that succeeds on every call."""
    return FakeConverter()


@pytest.fixture
def memory_store() -> MemoryBlobStore:
    """Empty in-memory blob store."""
    return MemoryBlobStore()


@pytest.fixture
def make_converter():
    """Factory for scripted converters."""
    return FakeConverter


@pytest.fixture(autouse=True)
def _restore_log_output():
    """Restore the global console log stream after each test.

    CLI tests run under CliRunner, whose temporary stderr is closed once the
    invocation returns; keep it from leaking into later tests.
    """
    import logging

    from docbatch.utils import logging as docbatch_logging

    saved_output = docbatch_logging._log_output
    saved_handlers = list(logging.getLogger().handlers)
    yield
    docbatch_logging._log_output = saved_output
    logging.getLogger().handlers[:] = saved_handlers
