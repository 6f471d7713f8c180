"""Blob storage for converted results."""

from docbatch.storage.blob_store import BlobStore, FileBlobStore, MemoryBlobStore

__all__ = ["BlobStore", "FileBlobStore", "MemoryBlobStore"]
