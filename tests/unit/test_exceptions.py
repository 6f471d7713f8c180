"""Tests for exceptions module."""

import pytest

from docbatch.exceptions import (
    AllConversionsFailedError,
    BatchCancelledError,
    ConversionError,
    DocbatchError,
    InvalidTransitionError,
    StallTimeoutError,
    StateError,
    StorageWriteError,
    TaskError,
    UnsupportedFormatError,
)


class TestExceptions:
    """Tests for custom exceptions."""

    def test_docbatch_error(self):
        """Test base DocbatchError."""
        error = DocbatchError("Test error")
        assert str(error) == "Test error"

    def test_conversion_error(self):
        """Test ConversionError keeps filename and message."""
        error = ConversionError("report.docx", "Invalid format")

        assert str(error) == "Conversion failed for report.docx: Invalid format"
        assert error.filename == "report.docx"
        assert error.message == "Invalid format"
        assert error.cause is None

    def test_conversion_error_with_cause(self):
        """Test ConversionError with cause."""
        cause = ValueError("Original error")
        error = ConversionError("report.docx", "Conversion failed", cause=cause)

        assert error.cause is cause

    def test_stall_timeout_error(self):
        """Test StallTimeoutError message names the window and last event."""
        error = StallTimeoutError("slides.pptx", 30.0, "Converting pptx to pdf")

        assert isinstance(error, ConversionError)
        assert error.message == "No progress for 30s (last: Converting pptx to pdf)"
        assert error.timeout == 30.0

    def test_stall_timeout_error_without_events(self):
        """Test StallTimeoutError when nothing was ever reported."""
        error = StallTimeoutError("a.doc", 0.5)

        assert "0.5s" in error.message
        assert error.last_message is None

    def test_storage_write_error(self):
        """Test StorageWriteError is a conversion failure."""
        cause = OSError("disk full")
        error = StorageWriteError("a.docx", "batch-1-abc", cause)

        assert isinstance(error, ConversionError)
        assert error.key == "batch-1-abc"
        assert "disk full" in error.message

    def test_unsupported_format_error(self):
        """Test UnsupportedFormatError."""
        error = UnsupportedFormatError("notes.xyz", "xyz")

        assert "xyz" in str(error)
        assert error.extension == "xyz"

    def test_all_conversions_failed_error(self):
        """Test AllConversionsFailedError carries per-task diagnostics."""
        errors = [
            TaskError(task_id="t1", filename="a.docx", error="boom"),
            TaskError(task_id="t2", filename="b.docx", error="bang"),
        ]
        error = AllConversionsFailedError(errors)

        assert str(error) == "All conversions failed (2 errors)"
        assert error.errors == errors

    def test_batch_cancelled_error(self):
        """Test BatchCancelledError."""
        error = BatchCancelledError("abc123")
        assert error.batch_id == "abc123"
        assert "abc123" in str(error)

    def test_invalid_transition_is_state_error(self):
        """Test InvalidTransitionError."""
        error = InvalidTransitionError("t1", "done", "converting")

        assert isinstance(error, StateError)
        assert "done -> converting" in str(error)

    def test_hierarchy(self):
        """Test all errors derive from DocbatchError."""
        with pytest.raises(DocbatchError):
            raise StallTimeoutError("x.doc", 1.0)
