"""Shared filesystem and hashing utilities for am2r-launcher."""

from __future__ import annotations

import hashlib
import os
import re
import shutil
import stat
from collections.abc import Iterator
from pathlib import Path
from typing import BinaryIO

import structlog

logger = structlog.get_logger()

_ROLLOVER_SUFFIX = re.compile(r"^(?P<base>.*)\.(?P<index>\d)$")


def chunked_read(
    stream: BinaryIO,
    chunk_size: int = 65536
) -> Iterator[bytes]:
    """Read stream in chunks.

    Args:
        stream: Binary stream to read from
        chunk_size: Size of each chunk in bytes

    Yields:
        Data chunks as bytes

    Raises:
        ValueError: If chunk_size is not positive

    Example:
        >>> import io
        >>> stream = io.BytesIO(b"hello world")
        >>> chunks = list(chunked_read(stream, chunk_size=5))
        >>> chunks
        [b'hello', b' worl', b'd']
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")

    while True:
        chunk = stream.read(chunk_size)
        if not chunk:
            break
        yield chunk


def compute_file_md5(path: Path | str) -> str:
    """Compute the MD5 digest of a file as lowercase hex.

    MD5 is kept for compatibility with previously cached verdicts and the
    published digests of the base archive; changing it invalidates them.

    Args:
        path: File to hash

    Returns:
        Hex digest, or an empty string if the file does not exist.
        The empty string never matches a real digest.

    Example:
        >>> compute_file_md5("/does/not/exist")
        ''
    """
    file_path = Path(path)
    if not file_path.is_file():
        return ""

    md5 = hashlib.md5()
    with open(file_path, "rb") as f:
        for chunk in chunked_read(f):
            md5.update(chunk)
    return md5.hexdigest()


def format_size(size: int) -> str:
    """Format byte size as human-readable string.

    Args:
        size: Size in bytes

    Returns:
        Formatted string with appropriate unit (e.g., "1.5 MB")

    Example:
        >>> format_size(1024)
        '1.0 KB'
        >>> format_size(1536)
        '1.5 KB'
    """
    if size < 0:
        return "0 B"

    size_float = float(size)
    for unit in ["B", "KB", "MB", "GB", "TB"]:
        if size_float < 1024.0:
            if unit == "B":
                return f"{int(size_float)} {unit}"
            return f"{size_float:.1f} {unit}"
        size_float /= 1024.0
    return f"{size_float:.1f} PB"


def copy_tree(source: Path, destination: Path, overwrite: bool = True) -> None:
    """Recursively copy a directory's contents over another directory.

    Args:
        source: Directory to copy from
        destination: Directory to copy into, created if missing
        overwrite: Replace files that already exist in destination

    Raises:
        FileNotFoundError: If source does not exist
    """
    if not source.is_dir():
        raise FileNotFoundError(f"Source directory does not exist: {source}")

    destination.mkdir(parents=True, exist_ok=True)
    for entry in source.iterdir():
        target = destination / entry.name
        if entry.is_dir():
            copy_tree(entry, target, overwrite)
        elif overwrite or not target.exists():
            shutil.copy2(entry, target)


def _clear_readonly(func, path, _exc) -> None:
    os.chmod(path, stat.S_IWRITE | stat.S_IREAD)
    func(path)


def delete_directory(target: Path) -> None:
    """Delete a directory tree, including read-only files.

    Does nothing if the directory does not exist.
    """
    if not target.exists():
        return
    shutil.rmtree(target, onexc=_clear_readonly)


def rollover_file(path: Path, max_index: int = 9) -> None:
    """Move a file out of the way by appending a numeric suffix.

    ``file`` becomes ``file.1``; an existing ``file.1`` is first rolled to
    ``file.2`` and so on. A file that would reach ``max_index`` is deleted
    instead of renamed, so at most ``max_index - 1`` backups survive.

    Args:
        path: File to roll over
        max_index: Highest suffix that is never written
    """
    match = _ROLLOVER_SUFFIX.match(path.name)
    if match:
        index = int(match.group("index")) + 1
        next_path = path.with_name(f"{match.group('base')}.{index}")
    else:
        index = 1
        next_path = path.with_name(f"{path.name}.1")

    if next_path.exists():
        rollover_file(next_path, max_index)

    if index < max_index:
        path.rename(next_path)
        logger.debug("file_rolled_over", source=str(path), target=str(next_path))
    else:
        path.unlink()
        logger.debug("file_rollover_dropped", path=str(path))


def lowercase_files(directory: Path, suffix: str) -> int:
    """Rename files with the given suffix in a directory to lower case.

    Files whose lower-case name already exists are left alone.

    Returns:
        Number of renamed files
    """
    renamed = 0
    for entry in directory.iterdir():
        if not entry.is_file() or not entry.name.endswith(suffix):
            continue
        target = entry.with_name(entry.name.lower())
        if target.name == entry.name or target.exists():
            continue
        entry.rename(target)
        renamed += 1
    return renamed


def relative_to_root(path: Path, root: Path) -> str:
    """Express a path relative to root, falling back to the absolute path."""
    try:
        return os.path.relpath(path, root)
    except ValueError:
        # different drives on Windows
        return str(path)
