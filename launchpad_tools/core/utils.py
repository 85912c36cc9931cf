"""Shared utilities for launchpad-tools."""

from __future__ import annotations

import hashlib
import os
from collections.abc import Iterator
from typing import BinaryIO

_NOISE_CHARS = str.maketrans("", "", "\r\n\0")


def remove_line_separators_and_nulls(text: str) -> str:
    """Strip carriage returns, line feeds and NUL characters.

    Args:
        text: Raw text, typically read from a remote or local file

    Returns:
        The text with all separator noise removed

    Example:
        >>> remove_line_separators_and_nulls("1.2.3\\r\\n\\x00")
        '1.2.3'
    """
    return text.translate(_NOISE_CHARS)


def to_host_path(path: str) -> str:
    """Rewrite both slash styles to the host separator.

    Example (POSIX host):
        >>> to_host_path("data\\\\maps/a.bin")
        'data/maps/a.bin'
    """
    return path.replace("\\", os.sep).replace("/", os.sep)


def to_wire_path(path: str) -> str:
    """Rewrite host separators to forward slashes."""
    return path.replace(os.sep, "/").replace("\\", "/")


def chunked_read(
    stream: BinaryIO,
    chunk_size: int = 8192
) -> Iterator[bytes]:
    """Read stream in chunks.

    Args:
        stream: Binary stream to read from
        chunk_size: Size of each chunk in bytes

    Yields:
        Data chunks as bytes

    Raises:
        ValueError: If chunk_size is not positive
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")

    while True:
        chunk = stream.read(chunk_size)
        if not chunk:
            break
        yield chunk


def compute_stream_md5(stream: BinaryIO, chunk_size: int = 65536) -> str:
    """Compute the MD5 hex digest of a stream without loading it whole.

    Args:
        stream: Binary stream positioned at the start of the data
        chunk_size: Read size in bytes

    Returns:
        Lowercase hex digest
    """
    digest = hashlib.md5()
    for chunk in chunked_read(stream, chunk_size):
        digest.update(chunk)
    return digest.hexdigest()


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
