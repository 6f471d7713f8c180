"""File name and file system helpers for docbatch."""

from pathlib import Path, PurePath

from docbatch.config.constants import SUPPORTED_INPUT_FORMATS
from docbatch.utils.logging import get_logger

log = get_logger(__name__)


def get_extension(filename: str) -> str:
    """Return the lowercase extension of a filename without the dot.

    Only the last suffix counts (``archive.tar.gz`` -> ``gz``). Names without
    a dot, and dot-files such as ``.env``, have no extension.

    Args:
        filename: File name or path

    Returns:
        Lowercase extension, or an empty string
    """
    return PurePath(filename).suffix.lstrip(".").lower()


def is_supported_input(filename: str) -> bool:
    """Check whether a filename has a supported input extension."""
    return get_extension(filename) in SUPPORTED_INPUT_FORMATS


def replace_extension(filename: str, target_format: str) -> str:
    """Substitute the target format for the filename's extension.

    Args:
        filename: Source file name (directories are stripped)
        target_format: Target extension, with or without a leading dot

    Returns:
        Output file name, e.g. ``report.docx`` -> ``report.pdf``
    """
    target = target_format.lstrip(".").lower()
    return f"{PurePath(filename).stem}.{target}"


def is_hidden(path: Path) -> bool:
    """Check if a file or any of its parents is hidden (dot-prefixed)."""
    return any(part.startswith(".") and part not in (".", "..") for part in path.parts)


def collect_files(
    paths: list[Path],
    recursive: bool = False,
    include_pattern: str | None = None,
    exclude_pattern: str | None = None,
) -> list[Path]:
    """Collect the files a batch should be submitted with.

    Directories are expanded, files are taken as given. Unsupported files are
    kept on purpose: the orchestrator classifies and reports them as skipped.

    Args:
        paths: Files and directories given by the user
        recursive: Search subdirectories
        include_pattern: Glob pattern for files to include
        exclude_pattern: Glob pattern for files to exclude

    Returns:
        Sorted, de-duplicated list of file paths
    """
    found: set[Path] = set()

    for path in paths:
        if path.is_file():
            found.add(path)
            continue
        if not path.is_dir():
            log.warning("Path does not exist, ignoring", path=str(path))
            continue

        pattern = "**/*" if recursive else "*"
        for file_path in path.glob(pattern):
            if not file_path.is_file() or is_hidden(file_path.relative_to(path)):
                continue
            if include_pattern and not file_path.match(include_pattern):
                continue
            if exclude_pattern and file_path.match(exclude_pattern):
                continue
            found.add(file_path)

    return sorted(found)


def format_size(size: int | float) -> str:
    """Format byte size as human-readable string.

    Args:
        size: Size in bytes

    Returns:
        Human-readable size string
    """
    size_f = float(size)
    for unit in ["B", "KB", "MB", "GB", "TB"]:
        if size_f < 1024:
            return f"{size_f:.1f} {unit}"
        size_f /= 1024
    return f"{size_f:.1f} PB"
