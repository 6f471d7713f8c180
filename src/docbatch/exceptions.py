"""Custom exceptions for docbatch."""

from dataclasses import dataclass


class DocbatchError(Exception):
    """Base exception class for docbatch."""

    pass


class UnsupportedFormatError(DocbatchError):
    """Source file extension is not in the supported input set."""

    def __init__(self, filename: str, extension: str) -> None:
        self.filename = filename
        self.extension = extension
        super().__init__(f"Unsupported format for {filename}: {extension or '(none)'}")


class ConversionError(DocbatchError):
    """Error during document conversion."""

    def __init__(self, filename: str, message: str, cause: Exception | None = None) -> None:
        self.filename = filename
        self.message = message
        self.cause = cause
        super().__init__(f"Conversion failed for {filename}: {message}")


class StallTimeoutError(ConversionError):
    """No progress was reported by the converter within the stall window."""

    def __init__(self, filename: str, timeout: float, last_message: str | None = None) -> None:
        self.timeout = timeout
        self.last_message = last_message
        super().__init__(
            filename,
            f"No progress for {timeout:g}s (last: {last_message or 'no progress reported'})",
        )


class StorageWriteError(ConversionError):
    """Converted bytes could not be written to the blob store."""

    def __init__(self, filename: str, key: str, cause: Exception | None = None) -> None:
        self.key = key
        super().__init__(filename, f"Failed to store result under {key}: {cause}", cause=cause)


@dataclass(frozen=True)
class TaskError:
    """Diagnostic entry for a task that ended in the failed state."""

    task_id: str
    filename: str
    error: str


class AllConversionsFailedError(DocbatchError):
    """No task in the batch produced a result."""

    def __init__(self, errors: list[TaskError]) -> None:
        self.errors = errors
        super().__init__(f"All conversions failed ({len(errors)} errors)")


class BatchCancelledError(DocbatchError):
    """The batch was cancelled before completion."""

    def __init__(self, batch_id: str) -> None:
        self.batch_id = batch_id
        super().__init__(f"Batch {batch_id} was cancelled")


class StateError(DocbatchError):
    """State management error."""

    pass


class InvalidTransitionError(StateError):
    """A task was moved along an edge the status machine does not allow."""

    def __init__(self, task_id: str, current: str, target: str) -> None:
        self.task_id = task_id
        self.current = current
        self.target = target
        super().__init__(f"Task {task_id}: illegal transition {current} -> {target}")


class ConfigurationError(DocbatchError):
    """Configuration error."""

    pass
