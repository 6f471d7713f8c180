"""Task and batch state for a conversion run."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

import anyio

from docbatch.exceptions import InvalidTransitionError, StateError, TaskError
from docbatch.utils.logging import get_logger

log = get_logger(__name__)


class TaskStatus(str, Enum):
    READY = "ready"
    CONVERTING = "converting"
    DONE = "done"
    COPIED = "copied"
    FAILED = "failed"
    UNSUPPORTED = "unsupported"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def is_success(self) -> bool:
        return self in (TaskStatus.DONE, TaskStatus.COPIED)

    @property
    def label(self) -> str:
        """Human-readable status label."""
        return _LABELS[self]


TERMINAL_STATUSES = frozenset(
    {TaskStatus.DONE, TaskStatus.COPIED, TaskStatus.FAILED, TaskStatus.UNSUPPORTED}
)

_LABELS = {
    TaskStatus.READY: "Ready",
    TaskStatus.CONVERTING: "Converting...",
    TaskStatus.DONE: "Converted",
    TaskStatus.COPIED: "Copied",
    TaskStatus.FAILED: "Failed",
    TaskStatus.UNSUPPORTED: "Unsupported",
}

# READY -> FAILED covers a copy whose storage write failed.
# CONVERTING -> CONVERTING is a retry attempt.
_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.READY: frozenset({TaskStatus.CONVERTING, TaskStatus.COPIED, TaskStatus.FAILED}),
    TaskStatus.CONVERTING: frozenset({TaskStatus.CONVERTING, TaskStatus.DONE, TaskStatus.FAILED}),
}


def new_task_id() -> str:
    return uuid.uuid4().hex[:12]


@dataclass
class FileTask:
    """One item submitted for conversion.

    ``source`` is either the document bytes or a path read on first use.
    """

    id: str
    filename: str
    source: bytes | Path = field(repr=False)
    source_extension: str
    output_name: str
    status: TaskStatus = TaskStatus.READY
    attempt: int = 0
    error: str | None = None
    storage_key: str | None = None
    result_size: int | None = None
    started_at: str | None = None
    completed_at: str | None = None

    async def read_source(self) -> bytes:
        """Load the source bytes."""
        if isinstance(self.source, Path):
            return await anyio.Path(self.source).read_bytes()
        return self.source

    def _move(self, target: TaskStatus) -> None:
        if target not in _TRANSITIONS.get(self.status, frozenset()):
            raise InvalidTransitionError(self.id, self.status.value, target.value)
        self.status = target

    def mark_converting(self) -> None:
        """Start a new conversion attempt."""
        self._move(TaskStatus.CONVERTING)
        self.attempt += 1
        if self.started_at is None:
            self.started_at = datetime.now().isoformat()

    def mark_done(self, storage_key: str, size: int) -> None:
        self._move(TaskStatus.DONE)
        self._finish(storage_key, size)

    def mark_copied(self, storage_key: str, size: int) -> None:
        self._move(TaskStatus.COPIED)
        self._finish(storage_key, size)

    def mark_failed(self, error: str) -> None:
        self._move(TaskStatus.FAILED)
        self.error = error
        self.completed_at = datetime.now().isoformat()

    def _finish(self, storage_key: str, size: int) -> None:
        self.storage_key = storage_key
        self.result_size = size
        self.error = None
        self.completed_at = datetime.now().isoformat()

    def to_dict(self) -> dict[str, Any]:
        """Serializable view without the source bytes."""
        return {
            "id": self.id,
            "filename": self.filename,
            "source_extension": self.source_extension,
            "output_name": self.output_name,
            "status": self.status.value,
            "attempt": self.attempt,
            "error": self.error,
            "storage_key": self.storage_key,
            "result_size": self.result_size,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
        }


@dataclass(frozen=True)
class BatchProgress:
    """Progress snapshot emitted once per resolved task."""

    current: int = 0
    total: int = 0
    converted: int = 0
    copied: int = 0
    failed: int = 0

    @property
    def fraction(self) -> float:
        if self.total == 0:
            return 0.0
        return self.current / self.total


@dataclass
class BatchJob:
    """Ordered tasks of one batch plus aggregate counters.

    ``total`` is fixed at submission to the number of supported tasks.
    Counters only grow.
    """

    batch_id: str
    output_format: str
    tasks: list[FileTask]
    total: int
    created_at: str = field(default_factory=lambda: datetime.now().isoformat())
    completed_at: str | None = None
    current: int = 0
    converted: int = 0
    copied: int = 0
    failed: int = 0

    @property
    def eligible_tasks(self) -> list[FileTask]:
        return [t for t in self.tasks if t.status is not TaskStatus.UNSUPPORTED]

    @property
    def skipped(self) -> int:
        return len(self.tasks) - self.total

    @property
    def is_complete(self) -> bool:
        return all(t.status.is_terminal for t in self.tasks)

    @property
    def progress(self) -> BatchProgress:
        return BatchProgress(
            current=self.current,
            total=self.total,
            converted=self.converted,
            copied=self.copied,
            failed=self.failed,
        )

    def record(self, task: FileTask) -> BatchProgress:
        """Count a task that just reached its terminal state.

        Returns:
            The updated progress snapshot
        """
        if task.status is TaskStatus.DONE:
            self.converted += 1
        elif task.status is TaskStatus.COPIED:
            self.copied += 1
        elif task.status is TaskStatus.FAILED:
            self.failed += 1
        else:
            raise StateError(f"Task {task.id} is not resolved: {task.status.value}")

        self.current += 1
        if self.current == self.total:
            self.completed_at = datetime.now().isoformat()
        return self.progress

    def successful_tasks(self) -> list[FileTask]:
        """Tasks with a stored result, in submission order."""
        return [t for t in self.tasks if t.status.is_success]

    def errors(self) -> list[TaskError]:
        return [
            TaskError(task_id=t.id, filename=t.filename, error=t.error or "Unknown error")
            for t in self.tasks
            if t.status is TaskStatus.FAILED
        ]
