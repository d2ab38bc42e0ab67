"""
Utility functions for file system operations, filenames and timestamps.

This module provides helper functions for:
- Reducing client-supplied filenames to a safe final path component
- Ensuring directory creation with proper error handling
- Producing UTC timestamps and epoch milliseconds
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from pathlib import Path

# Characters never allowed in a stored filename: path separators and control chars
UNSAFE_FILENAME_PATTERN = re.compile(r"[\\/\x00-\x1f]+")

# Filesystems cap a name at 255 bytes; the storage prefix takes 51 of them
MAX_NAME_BYTES = 200
MAX_EXTENSION_BYTES = 16


def safe_original_name(filename: str | None, fallback: str = "file") -> str:
    """
    Reduce a client-supplied filename to something safe to embed in a path.

    Only the final path component is kept, so names like ``../../etc/passwd``
    or ``C:\\docs\\report.pdf`` cannot escape the uploads directory. The
    human-readable part of the name is otherwise preserved.

    Args:
        filename: The original filename sent by the client (may be None)
        fallback: Value to use if nothing usable remains

    Returns:
        A filename without directory components

    Example:
        >>> safe_original_name("../secret/report.pdf")
        "report.pdf"
        >>> safe_original_name("..", "file")
        "file"
    """
    if not filename:
        return fallback
    # Windows-style separators are not split by pathlib on POSIX
    name = filename.replace("\\", "/").rsplit("/", 1)[-1]
    name = UNSAFE_FILENAME_PATTERN.sub("", name).strip()
    if name in {"", ".", ".."}:
        return fallback
    return name


def truncate_filename(name: str, max_bytes: int = MAX_NAME_BYTES) -> str:
    """
    Shorten a filename so its UTF-8 encoding fits in max_bytes.

    The extension is kept when it is short enough and the stem is cut on a
    character boundary.

    Example:
        >>> truncate_filename("a" * 300 + ".pdf", 10)
        "aaaaaa.pdf"
    """
    if len(name.encode("utf-8")) <= max_bytes:
        return name

    stem, dot, extension = name.rpartition(".")
    suffix = f"{dot}{extension}" if stem and len(extension.encode("utf-8")) < MAX_EXTENSION_BYTES else ""
    if suffix:
        name = stem
    budget = max(max_bytes - len(suffix.encode("utf-8")), 1)
    truncated = name.encode("utf-8")[:budget].decode("utf-8", errors="ignore")
    return f"{truncated}{suffix}"


def ensure_directory(path: Path) -> Path:
    """
    Create a directory if it doesn't exist, including parent directories.

    Args:
        path: The directory path to create

    Returns:
        The same path object for chaining

    Raises:
        OSError: If directory creation fails due to permissions or other I/O errors
    """
    path.mkdir(parents=True, exist_ok=True)
    return path


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def epoch_millis(moment: datetime | None = None) -> int:
    moment = moment or utcnow()
    return int(moment.timestamp() * 1000)


def isoformat_utc(moment: datetime) -> str:
    """Serialize a datetime as ISO-8601 UTC with millisecond precision."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
