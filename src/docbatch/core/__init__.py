"""Core batch processing."""

from docbatch.core.orchestrator import (
    BatchOrchestrator,
    BatchResult,
    BatchSummary,
    SourceItem,
)
from docbatch.core.state import BatchJob, BatchProgress, FileTask, TaskStatus
from docbatch.core.watchdog import StallWatchdog, run_with_stall_detection

__all__ = [
    "BatchJob",
    "BatchOrchestrator",
    "BatchProgress",
    "BatchResult",
    "BatchSummary",
    "FileTask",
    "SourceItem",
    "StallWatchdog",
    "TaskStatus",
    "run_with_stall_detection",
]
