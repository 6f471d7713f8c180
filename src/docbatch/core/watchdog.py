"""Stall detection for a single conversion attempt.

A conversion that keeps reporting progress may run as long as it needs.
One that goes silent for longer than the stall timeout is aborted and
reported as :class:`StallTimeoutError`.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

from docbatch.converters.base import ProgressCallback, ProgressEvent
from docbatch.exceptions import StallTimeoutError
from docbatch.utils.logging import get_logger

log = get_logger(__name__)

T = TypeVar("T")


class AttemptAbandoned(Exception):
    """The caller stopped waiting for an attempt; its result will be discarded."""


class StallWatchdog:
    """Tracks the time of the last progress event of one attempt."""

    def __init__(self, stall_timeout: float, clock: Callable[[], float] | None = None) -> None:
        self.stall_timeout = stall_timeout
        self._clock = clock or asyncio.get_running_loop().time
        self.last_progress_at = self._clock()
        self.last_event: ProgressEvent | None = None

    def on_progress(self, event: ProgressEvent) -> None:
        """Progress callback handed to the converter."""
        self.last_progress_at = self._clock()
        self.last_event = event

    @property
    def last_message(self) -> str | None:
        return self.last_event.message if self.last_event else None

    def silence(self) -> float:
        """Seconds since the last progress event (or since the attempt started)."""
        return self._clock() - self.last_progress_at

    def is_stalled(self) -> bool:
        return self.silence() > self.stall_timeout


def _discard_result(task: asyncio.Future) -> None:
    # Retrieve the outcome of an abandoned attempt so it is not reported as unhandled
    if not task.cancelled():
        task.exception()


async def run_with_stall_detection(
    operation: Callable[[ProgressCallback], Awaitable[T]],
    *,
    filename: str,
    stall_timeout: float,
    heartbeat_interval: float,
    abandon: asyncio.Event | None = None,
) -> T:
    """Run ``operation`` and abort it if it stops reporting progress.

    The operation receives a progress callback. Every ``heartbeat_interval``
    seconds the watchdog checks the silence since the last event; beyond
    ``stall_timeout`` the operation is cancelled. A stall is therefore
    detected within ``stall_timeout + heartbeat_interval`` of the last event.

    Args:
        operation: Coroutine factory taking the progress callback
        filename: Name used in error messages
        stall_timeout: Maximum silence in seconds
        heartbeat_interval: Seconds between stall checks
        abandon: When set, stop waiting and raise :class:`AttemptAbandoned`.
            The operation is left to finish on its own; its result is discarded.

    Returns:
        The operation's result

    Raises:
        StallTimeoutError: No progress within the stall window
        AttemptAbandoned: ``abandon`` was set while waiting
    """
    watchdog = StallWatchdog(stall_timeout)
    task = asyncio.ensure_future(operation(watchdog.on_progress))
    abandon_waiter = asyncio.ensure_future(abandon.wait()) if abandon is not None else None

    try:
        while True:
            waiters: set[asyncio.Future] = {task}
            if abandon_waiter is not None:
                waiters.add(abandon_waiter)
            await asyncio.wait(
                waiters, timeout=heartbeat_interval, return_when=asyncio.FIRST_COMPLETED
            )

            if task.done():
                return task.result()

            if abandon is not None and abandon.is_set():
                task.add_done_callback(_discard_result)
                raise AttemptAbandoned()

            if watchdog.is_stalled():
                log.warning(
                    "Conversion stalled, aborting attempt",
                    file=filename,
                    silence=round(watchdog.silence(), 2),
                    last_message=watchdog.last_message,
                )
                task.cancel()
                task.add_done_callback(_discard_result)
                raise StallTimeoutError(filename, stall_timeout, watchdog.last_message)
    except asyncio.CancelledError:
        # Caller cancelled us: do not leave the attempt running unobserved
        task.cancel()
        task.add_done_callback(_discard_result)
        raise
    finally:
        if abandon_waiter is not None:
            abandon_waiter.cancel()
