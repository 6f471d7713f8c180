"""Lazy page preview scheduling."""

from docbatch.preview.scheduler import PreviewCache, PreviewScheduler, VisibilityEvent

__all__ = ["PreviewCache", "PreviewScheduler", "VisibilityEvent"]
