"""Materialize archive plans into zip containers."""

from __future__ import annotations

import io
import zipfile
from dataclasses import dataclass
from pathlib import Path, PurePath
from typing import Literal

import anyio

from docbatch.archive.planner import ArchivePlanEntry
from docbatch.storage.blob_store import BlobStore
from docbatch.utils.logging import get_logger

log = get_logger(__name__)

_COMPRESSION = {
    "deflate": zipfile.ZIP_DEFLATED,
    "stored": zipfile.ZIP_STORED,
}


@dataclass(frozen=True)
class BuiltArchive:
    """A finished zip container."""

    name: str
    data: bytes
    members: tuple[str, ...]

    @property
    def size(self) -> int:
        return len(self.data)


def _unique_entry_name(name: str, used: set[str]) -> str:
    if name not in used:
        return name
    path = PurePath(name)
    counter = 1
    while True:
        candidate = f"{path.stem} ({counter}){path.suffix}"
        if candidate not in used:
            return candidate
        counter += 1


def _zip_entries(entries: list[tuple[str, bytes]], compression: int) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=compression) as zf:
        for name, data in entries:
            zf.writestr(name, data)
    return buffer.getvalue()


class ArchiveBuilder:
    """Reads planned members back from the blob store and zips them."""

    def __init__(
        self,
        store: BlobStore,
        compression: Literal["deflate", "stored"] = "deflate",
    ) -> None:
        self.store = store
        self.compression = _COMPRESSION[compression]

    async def build_one(self, entry: ArchivePlanEntry) -> BuiltArchive | None:
        """Build one planned archive.

        A member whose blob is missing means the orchestrator and the store
        disagree. It is skipped and logged, never written as an empty entry.

        Returns:
            The archive, or None if none of its members could be read
        """
        entries: list[tuple[str, bytes]] = []
        used: set[str] = set()

        for member in entry.members:
            data = await self.store.get(member.storage_key)
            if data is None:
                log.error(
                    "Stored result missing for successful task, skipping member",
                    archive=entry.archive_name,
                    output_name=member.output_name,
                    storage_key=member.storage_key,
                )
                continue
            name = _unique_entry_name(member.output_name, used)
            if name != member.output_name:
                log.warning(
                    "Duplicate output name in archive, renamed entry",
                    archive=entry.archive_name,
                    output_name=member.output_name,
                    entry_name=name,
                )
            used.add(name)
            entries.append((name, data))

        if not entries:
            log.error("Archive has no readable members, not emitted", archive=entry.archive_name)
            return None

        data = await anyio.to_thread.run_sync(_zip_entries, entries, self.compression)
        log.info(
            "Archive built",
            archive=entry.archive_name,
            members=len(entries),
            size=len(data),
        )
        return BuiltArchive(
            name=entry.archive_name,
            data=data,
            members=tuple(name for name, _ in entries),
        )

    async def build(self, plan: list[ArchivePlanEntry]) -> list[BuiltArchive]:
        """Build every archive of a plan, in plan order."""
        archives = []
        for entry in plan:
            archive = await self.build_one(entry)
            if archive is not None:
                archives.append(archive)
        return archives

    async def write(self, plan: list[ArchivePlanEntry], directory: Path) -> list[Path]:
        """Build a plan and write the archives into ``directory``.

        Returns:
            Paths of the written archives
        """
        await anyio.Path(directory).mkdir(parents=True, exist_ok=True)
        written = []
        for entry in plan:
            archive = await self.build_one(entry)
            if archive is None:
                continue
            path = directory / archive.name
            await anyio.Path(path).write_bytes(archive.data)
            written.append(path)
        return written
