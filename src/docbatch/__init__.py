"""docbatch - batch document conversion with size-bounded archives and lazy previews."""

__version__ = "0.1.0"
