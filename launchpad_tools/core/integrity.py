"""Content integrity verification for installed files.

A local file is intact when it exists, its size equals the manifest
entry's size, and the MD5 of its full content equals the entry's hash.
There is no partial or block-level verification: every check hashes
the whole file.
"""

from __future__ import annotations

from pathlib import Path

import structlog

from launchpad_tools.core.utils import compute_stream_md5
from launchpad_tools.formats.manifest import ManifestEntry

logger = structlog.get_logger()

HASH_CHUNK_SIZE = 1024 * 1024


class IntegrityError(Exception):
    """Raised when content verification fails.

    Attributes:
        expected: Expected hash or size
        actual: Actual hash or size
        path: The local file being verified
    """

    def __init__(
        self,
        message: str,
        *,
        expected: str | int | None = None,
        actual: str | int | None = None,
        path: str | None = None,
    ):
        self.expected = expected
        self.actual = actual
        self.path = path
        super().__init__(message)


def compute_file_md5(path: Path, chunk_size: int = HASH_CHUNK_SIZE) -> str:
    """Compute the MD5 hex digest of a file.

    Args:
        path: File to hash
        chunk_size: Read size in bytes

    Returns:
        Lowercase hex digest
    """
    with open(path, "rb") as f:
        return compute_stream_md5(f, chunk_size)


def hashes_match(actual: str, expected: str) -> bool:
    """Compare two hex digests ignoring case."""
    return actual.lower() == expected.lower()


def verify_file(path: Path, entry: ManifestEntry) -> bool:
    """Verify a local file against its manifest entry.

    Args:
        path: Local file path
        entry: Expected size and hash

    Returns:
        True if the file is intact

    Raises:
        IntegrityError: If the file is missing, has the wrong size, or
            its hash does not match
    """
    if not path.is_file():
        raise IntegrityError(f"File not found: {path}", path=str(path))

    actual_size = path.stat().st_size
    if actual_size != entry.size:
        raise IntegrityError(
            f"Size mismatch for {entry.relative_path}: expected {entry.size}, "
            f"got {actual_size}",
            expected=entry.size,
            actual=actual_size,
            path=str(path),
        )

    actual_hash = compute_file_md5(path)
    if not hashes_match(actual_hash, entry.content_hash):
        raise IntegrityError(
            f"Hash mismatch for {entry.relative_path}: expected "
            f"{entry.content_hash}, got {actual_hash}",
            expected=entry.content_hash,
            actual=actual_hash,
            path=str(path),
        )
    return True


def is_intact(path: Path, entry: ManifestEntry) -> bool:
    """Check whether a local file matches its manifest entry.

    Args:
        path: Local file path
        entry: Expected size and hash

    Returns:
        True if the file exists with the expected size and hash
    """
    try:
        return verify_file(path, entry)
    except IntegrityError as e:
        logger.debug(
            "integrity_check_failed",
            path=entry.relative_path,
            expected=e.expected,
            actual=e.actual,
        )
        return False
