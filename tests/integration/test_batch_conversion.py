"""End-to-end batch conversion: orchestrator, blob store and archive builder together."""

import io
import zipfile

import pytest

from docbatch.archive.builder import ArchiveBuilder
from docbatch.config.constants import MIB
from docbatch.core.orchestrator import BatchOrchestrator
from docbatch.exceptions import AllConversionsFailedError
from docbatch.storage.blob_store import FileBlobStore


def _entries(path) -> dict[str, bytes]:
    with zipfile.ZipFile(io.BytesIO(path.read_bytes())) as zf:
        return {name: zf.read(name) for name in zf.namelist()}


class TestBatchConversion:
    """Batch runs against a file-backed store."""

    async def test_mixed_batch_to_single_archive(self, make_converter, temp_dir):
        """Test the five-file batch produces one archive with four entries."""
        converter = make_converter()
        store = FileBlobStore(temp_dir / "blobs")
        orchestrator = BatchOrchestrator(
            converter, store, "pdf", retry_backoff=0, archive_base_name="base"
        )
        sources = temp_dir / "in"
        sources.mkdir()
        names = ["a.docx", "b.pptx", "c.pdf", "d.odt", "e.xyz"]
        for name in names:
            (sources / name).write_bytes(name.encode())
        orchestrator.submit((name, sources / name) for name in names)

        result = await orchestrator.run()
        written = await ArchiveBuilder(store).write(result.plan, temp_dir / "out")

        summary = result.summary
        assert (summary.total, summary.converted, summary.copied, summary.failed) == (4, 3, 1, 0)
        assert [p.name for p in written] == ["base.zip"]
        entries = _entries(written[0])
        assert list(entries) == ["a.pdf", "b.pdf", "c.pdf", "d.pdf"]
        assert entries["a.pdf"] == b"pdf:a.docx"
        assert entries["c.pdf"] == b"c.pdf"

    async def test_large_outputs_split(self, make_converter, temp_dir):
        """Test outputs that exceed the ceiling together land in separate archives."""
        converter = make_converter(sizes={b"one": 2 * MIB, b"two": 2 * MIB})
        store = FileBlobStore(temp_dir / "blobs")
        orchestrator = BatchOrchestrator(
            converter,
            store,
            "pdf",
            max_archive_size=3 * MIB,
            archive_base_name="base",
        )
        orchestrator.submit([("one.docx", b"one"), ("two.docx", b"two")])

        result = await orchestrator.run()
        written = await ArchiveBuilder(store).write(result.plan, temp_dir / "out")

        assert [p.name for p in written] == ["base-001.zip", "base-002.zip"]
        assert list(_entries(written[0])) == ["one.pdf"]
        assert list(_entries(written[1])) == ["two.pdf"]

    async def test_retry_then_partial_success(self, make_converter, temp_dir):
        """Test transient and permanent failures in one batch."""
        converter = make_converter(script={b"flaky": ["fail", "ok"], b"broken": ["fail"] * 3})
        store = FileBlobStore(temp_dir / "blobs")
        orchestrator = BatchOrchestrator(converter, store, "pdf", retry_backoff=0)
        orchestrator.submit([("flaky.docx", b"flaky"), ("broken.docx", b"broken")])

        result = await orchestrator.run()

        assert result.summary.converted == 1
        assert result.summary.failed == 1
        assert [f.filename for f in result.summary.failures] == ["broken.docx"]
        assert len(converter.calls) == 5

    async def test_all_failed_leaves_no_archive(self, make_converter, temp_dir):
        """Test a batch with no result raises and plans nothing."""
        converter = make_converter(script={b"x": ["fail"] * 3})
        store = FileBlobStore(temp_dir / "blobs")
        orchestrator = BatchOrchestrator(converter, store, "pdf", retry_backoff=0)
        orchestrator.submit([("x.docx", b"x")])

        with pytest.raises(AllConversionsFailedError):
            await orchestrator.run()

        assert orchestrator.plan is None

    async def test_second_run_clears_previous_results(self, make_converter, temp_dir):
        """Test results of an earlier batch do not leak into the next one."""
        store = FileBlobStore(temp_dir / "blobs")
        first = BatchOrchestrator(make_converter(), store, "pdf")
        first.submit([("a.docx", b"a")])
        first_result = await first.run()
        old_key = first_result.job.tasks[0].storage_key

        second = BatchOrchestrator(make_converter(), store, "pdf")
        second.submit([("b.docx", b"b")])
        await second.run()

        assert await store.get(old_key) is None
        assert len(list((temp_dir / "blobs").glob("*.blob"))) == 1
