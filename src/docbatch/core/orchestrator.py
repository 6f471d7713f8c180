"""Batch conversion orchestrator.

Drives every task of a batch through classification, conversion (with
retry and stall detection) or verbatim copy, and hands the stored results
to the archive planner once all tasks are resolved.
"""

from __future__ import annotations

import asyncio
import contextlib
import time
import uuid
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path

from docbatch.archive.planner import ArchiveMember, ArchivePlanEntry, plan_archives
from docbatch.config.constants import (
    DEFAULT_ARCHIVE_BASE_NAME,
    DEFAULT_HEARTBEAT_INTERVAL,
    DEFAULT_MAX_ARCHIVE_SIZE,
    DEFAULT_MAX_RETRIES,
    DEFAULT_RETRY_BACKOFF,
    DEFAULT_STALL_TIMEOUT,
    OUTPUT_FORMATS,
    STORAGE_KEY_PREFIX,
)
from docbatch.config.settings import DocbatchSettings
from docbatch.converters.base import ConversionPrimitive
from docbatch.core.state import BatchJob, BatchProgress, FileTask, TaskStatus, new_task_id
from docbatch.core.watchdog import AttemptAbandoned, run_with_stall_detection
from docbatch.exceptions import (
    AllConversionsFailedError,
    BatchCancelledError,
    ConfigurationError,
    ConversionError,
    StateError,
    StorageWriteError,
    TaskError,
    UnsupportedFormatError,
)
from docbatch.storage.blob_store import BlobStore
from docbatch.utils.fs import get_extension, is_supported_input, replace_extension
from docbatch.utils.logging import get_logger

log = get_logger(__name__)

SourceItem = tuple[str, bytes | Path]
ProgressHandler = Callable[[BatchProgress], None]
TaskHandler = Callable[[FileTask], None]


@dataclass(frozen=True)
class BatchSummary:
    """Final counts of a batch."""

    total: int
    converted: int
    copied: int
    failed: int
    skipped: int
    failures: list[TaskError] = field(default_factory=list)


@dataclass
class BatchResult:
    """Outcome of a batch that produced at least one result."""

    job: BatchJob
    plan: list[ArchivePlanEntry]
    summary: BatchSummary


def _describe(error: BaseException) -> str:
    if isinstance(error, ConversionError):
        return error.message
    return str(error) or type(error).__name__


class BatchOrchestrator:
    """Runs a batch of documents through a single conversion engine.

    The converter is one owned, heavy resource, so tasks are converted
    strictly one at a time in submission order. Running two conversions at
    once would require more than one engine instance.

    Usage:
        ```python
        orchestrator = BatchOrchestrator(converter, MemoryBlobStore(), "pdf")
        orchestrator.submit([("a.docx", data_a), ("b.pdf", data_b)])
        result = await orchestrator.run()
        archives = await ArchiveBuilder(orchestrator.store).build(result.plan)
        ```
    """

    def __init__(
        self,
        converter: ConversionPrimitive,
        store: BlobStore,
        output_format: str,
        *,
        max_retries: int = DEFAULT_MAX_RETRIES,
        stall_timeout: float = DEFAULT_STALL_TIMEOUT,
        heartbeat_interval: float = DEFAULT_HEARTBEAT_INTERVAL,
        retry_backoff: float = DEFAULT_RETRY_BACKOFF,
        max_archive_size: int = DEFAULT_MAX_ARCHIVE_SIZE,
        archive_base_name: str = DEFAULT_ARCHIVE_BASE_NAME,
        on_progress: ProgressHandler | None = None,
        on_task_update: TaskHandler | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            converter: The conversion engine (shared, used sequentially)
            store: Blob store receiving converted bytes
            output_format: Target extension for every task
            max_retries: Retries after the first failed attempt
            stall_timeout: Seconds without progress before an attempt is aborted
            heartbeat_interval: Seconds between stall checks
            retry_backoff: Seconds to wait between attempts
            max_archive_size: Archive ceiling in bytes
            archive_base_name: Base name for produced archives
            on_progress: Called once per resolved task
            on_task_update: Called on every task status change

        Raises:
            ConfigurationError: Unknown output format or invalid limits
        """
        output_format = output_format.lower().lstrip(".")
        if output_format not in OUTPUT_FORMATS:
            raise ConfigurationError(
                f"Invalid output format: {output_format}. "
                f"Valid formats: {', '.join(sorted(OUTPUT_FORMATS))}"
            )
        if max_retries < 0:
            raise ConfigurationError(f"max_retries must be >= 0, got {max_retries}")
        if stall_timeout <= 0 or heartbeat_interval <= 0:
            raise ConfigurationError("stall_timeout and heartbeat_interval must be positive")

        self.converter = converter
        self.store = store
        self.output_format = output_format
        self.max_retries = max_retries
        self.stall_timeout = stall_timeout
        self.heartbeat_interval = heartbeat_interval
        self.retry_backoff = retry_backoff
        self.max_archive_size = max_archive_size
        self.archive_base_name = archive_base_name
        self.on_progress = on_progress
        self.on_task_update = on_task_update

        self._job: BatchJob | None = None
        self._plan: list[ArchivePlanEntry] | None = None
        self._cancel_event = asyncio.Event()
        self._running = False
        self._run_stamp = 0

    @classmethod
    def from_settings(
        cls,
        converter: ConversionPrimitive,
        store: BlobStore,
        settings: DocbatchSettings,
        output_format: str | None = None,
        **kwargs,
    ) -> BatchOrchestrator:
        """Create an orchestrator from loaded settings.

        Keyword arguments override the corresponding settings.
        """
        options = {
            "max_retries": settings.batch.max_retries,
            "stall_timeout": settings.batch.stall_timeout,
            "heartbeat_interval": settings.batch.heartbeat_interval,
            "retry_backoff": settings.batch.retry_backoff,
            "max_archive_size": settings.archive.max_archive_size,
            "archive_base_name": settings.archive.base_name,
        }
        options.update(kwargs)
        return cls(
            converter,
            store,
            output_format or settings.batch.default_output_format,
            **options,
        )

    @property
    def job(self) -> BatchJob | None:
        return self._job

    @property
    def plan(self) -> list[ArchivePlanEntry] | None:
        return self._plan

    @property
    def is_cancelled(self) -> bool:
        return self._cancel_event.is_set()

    @property
    def is_running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def submit(self, items: Iterable[SourceItem]) -> BatchJob:
        """Create a batch from ``(name, bytes_or_path)`` items and classify each.

        Items with an unsupported extension are marked ``unsupported`` and
        excluded from ``total``.
        """
        if self._running:
            raise StateError("Cannot submit while a batch is running")

        tasks = []
        for name, source in items:
            extension = get_extension(name)
            task = FileTask(
                id=new_task_id(),
                filename=name,
                source=source,
                source_extension=extension,
                output_name=replace_extension(name, self.output_format),
            )
            if not is_supported_input(name):
                task.status = TaskStatus.UNSUPPORTED
                task.error = str(UnsupportedFormatError(name, extension))
                log.info("Unsupported format, skipping", file=name, extension=extension)
            tasks.append(task)

        total = sum(1 for t in tasks if t.status is not TaskStatus.UNSUPPORTED)
        self._job = BatchJob(
            batch_id=uuid.uuid4().hex[:12],
            output_format=self.output_format,
            tasks=tasks,
            total=total,
        )
        self._plan = None
        self._cancel_event.clear()

        log.info(
            "Batch submitted",
            batch_id=self._job.batch_id,
            files=len(tasks),
            total=total,
            skipped=self._job.skipped,
            output_format=self.output_format,
        )
        return self._job

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def run(self) -> BatchResult:
        """Process every eligible task in submission order.

        Returns:
            The batch result with its archive plan

        Raises:
            StateError: Nothing submitted, or already running
            BatchCancelledError: :meth:`cancel` was called
            AllConversionsFailedError: No task produced a result
        """
        job = self._job
        if job is None:
            raise StateError("No batch submitted")
        if self._running:
            raise StateError("Batch is already running")
        if job.is_complete and job.current:
            raise StateError(f"Batch {job.batch_id} has already run")

        self._running = True
        self._run_stamp = int(time.time() * 1000)
        try:
            await self.store.clear()
            log.info("Batch started", batch_id=job.batch_id, total=job.total)

            for task in job.eligible_tasks:
                if self.is_cancelled:
                    break
                if task.source_extension == self.output_format:
                    await self._copy(task)
                else:
                    await self._convert(task)
                if self.is_cancelled:
                    break
                progress = job.record(task)
                if self.on_progress is not None:
                    self.on_progress(progress)

            if self.is_cancelled:
                await self._release()
                raise BatchCancelledError(job.batch_id)

            return self._complete(job)
        finally:
            self._running = False

    def _complete(self, job: BatchJob) -> BatchResult:
        summary = BatchSummary(
            total=job.total,
            converted=job.converted,
            copied=job.copied,
            failed=job.failed,
            skipped=job.skipped,
            failures=job.errors(),
        )
        log.info(
            "Batch finished",
            batch_id=job.batch_id,
            converted=summary.converted,
            copied=summary.copied,
            failed=summary.failed,
            skipped=summary.skipped,
        )

        successes = job.successful_tasks()
        if not successes:
            log.error("All conversions failed", batch_id=job.batch_id, errors=len(summary.failures))
            raise AllConversionsFailedError(summary.failures)

        members = [
            ArchiveMember(
                output_name=t.output_name,
                storage_key=t.storage_key,
                size=t.result_size or 0,
            )
            for t in successes
            if t.storage_key is not None
        ]
        self._plan = plan_archives(members, self.archive_base_name, self.max_archive_size)
        return BatchResult(job=job, plan=self._plan, summary=summary)

    def _storage_key(self, task: FileTask) -> str:
        return f"{STORAGE_KEY_PREFIX}-{self._run_stamp}-{task.id}"

    def _notify(self, task: FileTask) -> None:
        if self.on_task_update is not None:
            self.on_task_update(task)

    async def _store(self, task: FileTask, data: bytes) -> str:
        key = self._storage_key(task)
        try:
            await self.store.put(key, data)
        except Exception as e:
            raise StorageWriteError(task.filename, key, e) from e
        return key

    async def _copy(self, task: FileTask) -> None:
        """Store a same-format source verbatim."""
        try:
            data = await task.read_source()
            key = await self._store(task, data)
        except Exception as e:
            task.mark_failed(_describe(e))
            log.error("Copy failed", task_id=task.id, file=task.filename, error=task.error)
            self._notify(task)
            return

        if self.is_cancelled:
            return
        task.mark_copied(key, len(data))
        log.info("Task copied", task_id=task.id, file=task.filename, size=len(data))
        self._notify(task)

    async def _convert(self, task: FileTask) -> None:
        """Convert one task with up to ``max_retries`` retries."""
        last_error: BaseException | None = None
        source: bytes | None = None

        for attempt in range(self.max_retries + 1):
            if self.is_cancelled:
                return

            task.mark_converting()
            self._notify(task)
            log.debug(
                "Conversion attempt", task_id=task.id, file=task.filename, attempt=attempt + 1
            )

            try:
                if source is None:
                    source = await task.read_source()
                data = source

                result = await run_with_stall_detection(
                    lambda on_progress: self.converter.convert(
                        data, task.source_extension, self.output_format, on_progress
                    ),
                    filename=task.filename,
                    stall_timeout=self.stall_timeout,
                    heartbeat_interval=self.heartbeat_interval,
                    abandon=self._cancel_event,
                )
                if self.is_cancelled:
                    return
                key = await self._store(task, result)
            except AttemptAbandoned:
                return
            except Exception as e:
                last_error = e
                if attempt < self.max_retries:
                    log.warning(
                        "Conversion attempt failed, retrying",
                        task_id=task.id,
                        file=task.filename,
                        attempt=attempt + 1,
                        error=_describe(e),
                    )
                    await self._backoff()
                continue

            if self.is_cancelled:
                return
            task.mark_done(key, len(result))
            log.info(
                "Task converted",
                task_id=task.id,
                file=task.filename,
                attempt=attempt + 1,
                size=len(result),
            )
            self._notify(task)
            return

        task.mark_failed(_describe(last_error) if last_error else "Unknown error")
        log.error(
            "Task failed",
            task_id=task.id,
            file=task.filename,
            attempts=task.attempt,
            error=task.error,
        )
        self._notify(task)

    async def _backoff(self) -> None:
        # Returns early when the batch is cancelled
        with contextlib.suppress(TimeoutError):
            await asyncio.wait_for(self._cancel_event.wait(), timeout=self.retry_backoff)

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    async def cancel(self) -> None:
        """Cancel the batch.

        A running batch stops at its next suspension point: the in-flight
        conversion is abandoned and its result discarded, stored bytes are
        released and :meth:`run` raises :class:`BatchCancelledError`. A batch
        that is not running is discarded right away.
        """
        self._cancel_event.set()
        if self._job is not None:
            log.info("Batch cancel requested", batch_id=self._job.batch_id)
        if not self._running:
            await self._release()

    async def _release(self) -> None:
        self._plan = None
        await self.store.clear()
        log.info("Batch results released", batch_id=self._job.batch_id if self._job else None)
