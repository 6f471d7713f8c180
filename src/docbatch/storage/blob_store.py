"""Ephemeral key/value stores for converted document bytes."""

from __future__ import annotations

import re
import uuid
from pathlib import Path
from typing import Protocol

import anyio

from docbatch.utils.logging import get_logger

log = get_logger(__name__)

_SAFE_KEY = re.compile(r"^[A-Za-z0-9._-]+$")


class BlobStore(Protocol):
    """Byte store shared by the orchestrator (writer) and the archive builder (reader).

    A ``put`` either fully succeeds or the key stays absent.
    """

    async def put(self, key: str, data: bytes) -> None: ...

    async def get(self, key: str) -> bytes | None: ...

    async def clear(self) -> None: ...


class MemoryBlobStore:
    """Blob store holding everything in process memory."""

    def __init__(self) -> None:
        self._blobs: dict[str, bytes] = {}

    async def put(self, key: str, data: bytes) -> None:
        self._blobs[key] = bytes(data)

    async def get(self, key: str) -> bytes | None:
        return self._blobs.get(key)

    async def clear(self) -> None:
        count = len(self._blobs)
        self._blobs.clear()
        log.debug("Memory blob store cleared", released=count)

    def __len__(self) -> int:
        return len(self._blobs)

    def __contains__(self, key: str) -> bool:
        return key in self._blobs


class FileBlobStore:
    """Blob store keeping one file per key in a directory.

    Writes go to a temporary sibling first and are renamed into place, so a
    failed or interrupted ``put`` never leaves a partial blob behind.
    """

    def __init__(self, directory: Path | str) -> None:
        """Initialize the store.

        Args:
            directory: Directory owned by this store; ``clear`` empties it
        """
        self.directory = Path(directory)

    def _path(self, key: str) -> anyio.Path:
        if not _SAFE_KEY.match(key):
            raise ValueError(f"Invalid blob key: {key!r}")
        return anyio.Path(self.directory / f"{key}.blob")

    async def put(self, key: str, data: bytes) -> None:
        target = self._path(key)
        await anyio.Path(self.directory).mkdir(parents=True, exist_ok=True)
        temp = anyio.Path(self.directory / f".{key}.{uuid.uuid4().hex[:8]}.tmp")
        try:
            await temp.write_bytes(data)
            await temp.replace(target)
        except BaseException:
            await temp.unlink(missing_ok=True)
            raise

    async def get(self, key: str) -> bytes | None:
        path = self._path(key)
        try:
            return await path.read_bytes()
        except FileNotFoundError:
            return None

    async def clear(self) -> None:
        directory = anyio.Path(self.directory)
        if not await directory.exists():
            return
        count = 0
        async for entry in directory.iterdir():
            if entry.name.endswith((".blob", ".tmp")):
                await entry.unlink(missing_ok=True)
                count += 1
        log.debug("File blob store cleared", directory=str(self.directory), released=count)
