"""Archive planning and building."""

from docbatch.archive.builder import ArchiveBuilder, BuiltArchive
from docbatch.archive.planner import (
    ArchiveMember,
    ArchivePlanEntry,
    archive_name,
    plan_archives,
)

__all__ = [
    "ArchiveBuilder",
    "ArchiveMember",
    "ArchivePlanEntry",
    "BuiltArchive",
    "archive_name",
    "plan_archives",
]
