"""Partition converted outputs into size-bounded archives."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from docbatch.config.constants import ARCHIVE_INDEX_WIDTH, DEFAULT_MAX_ARCHIVE_SIZE
from docbatch.utils.logging import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class ArchiveMember:
    """A stored result to be placed in an archive."""

    output_name: str
    storage_key: str
    size: int


@dataclass(frozen=True)
class ArchivePlanEntry:
    """One planned archive and its members in packing order."""

    archive_name: str
    members: tuple[ArchiveMember, ...]

    @property
    def size(self) -> int:
        return sum(m.size for m in self.members)


def archive_name(base_name: str, index: int, count: int) -> str:
    """Name of the ``index``-th (1-based) archive out of ``count``.

    A lone archive is ``<base>.zip``; otherwise ``<base>-001.zip``, ``<base>-002.zip``...
    """
    if count == 1:
        return f"{base_name}.zip"
    return f"{base_name}-{index:0{ARCHIVE_INDEX_WIDTH}d}.zip"


def plan_archives(
    members: Iterable[ArchiveMember],
    base_name: str,
    max_size: int = DEFAULT_MAX_ARCHIVE_SIZE,
) -> list[ArchivePlanEntry]:
    """Greedily pack members, in order, into archives of at most ``max_size`` bytes.

    A member larger than ``max_size`` closes the current archive and gets an
    archive of its own. Otherwise a member that would overflow the current,
    non-empty archive starts a new one. The plan is deterministic and keeps
    input order across and within archives.

    Args:
        members: Stored results in submission order
        base_name: Archive base name (without ``.zip``)
        max_size: Archive ceiling in bytes

    Returns:
        Planned archives in emission order; empty when there are no members
    """
    if max_size < 1:
        raise ValueError(f"max_size must be positive, got {max_size}")

    groups: list[list[ArchiveMember]] = []
    current: list[ArchiveMember] = []
    current_size = 0

    for member in members:
        if member.size > max_size:
            if current:
                groups.append(current)
                current, current_size = [], 0
            groups.append([member])
            log.debug(
                "Oversized member gets a dedicated archive",
                output_name=member.output_name,
                size=member.size,
                max_size=max_size,
            )
            continue

        if current and current_size + member.size > max_size:
            groups.append(current)
            current, current_size = [], 0

        current.append(member)
        current_size += member.size

    if current:
        groups.append(current)

    plan = [
        ArchivePlanEntry(
            archive_name=archive_name(base_name, index, len(groups)),
            members=tuple(group),
        )
        for index, group in enumerate(groups, start=1)
    ]

    log.info(
        "Archive plan computed",
        archives=len(plan),
        members=sum(len(entry.members) for entry in plan),
        max_size=max_size,
    )
    return plan
