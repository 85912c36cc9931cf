"""Transfer protocol interface shared by the FTP and HTTP backends.

The patch engine only talks to TransferProtocol. Backends know about
FTP verbs or HTTP range headers; nothing above this layer does.
"""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from types import TracebackType
from typing import BinaryIO
from urllib.parse import urlparse

import structlog

from launchpad_tools.core.config import RemoteConfig
from launchpad_tools.core.utils import remove_line_separators_and_nulls

logger = structlog.get_logger()

ANONYMOUS_CREDENTIALS = ("anonymous", "anonymous")

# Called after every chunk with (bytes_done, bytes_total)
ChunkCallback = Callable[[int, int], None]


class TransferError(Exception):
    """Raised when the remote server cannot be reached or queried."""


class LocalFileError(Exception):
    """Raised when a transfer cannot write its local file."""


@dataclass
class TransferResult:
    """Result of a single file transfer.

    Attributes:
        success: Whether the file was written completely
        bytes_written: Bytes written during this transfer
        resumed: True if the transfer appended to an existing partial file
        skipped: True if no transfer was needed
        error: Error description if the transfer failed
    """

    success: bool
    bytes_written: int = 0
    resumed: bool = False
    skipped: bool = False
    error: str | None = None

    @classmethod
    def failed(cls, error: str) -> TransferResult:
        return cls(success=False, error=error)


class ChunkWriter:
    """Writes downloaded chunks to disk and reports progress.

    Opens the target in append mode when resuming and truncates it
    otherwise. OSErrors are re-raised as LocalFileError so that backends
    can tell local failures apart from network failures.

    Args:
        local_path: Target file
        offset: Bytes already present when resuming, 0 for a fresh file
        total: Expected final size for progress reporting
        on_chunk: Progress callback
    """

    def __init__(
        self,
        local_path: Path,
        offset: int = 0,
        total: int = 0,
        on_chunk: ChunkCallback | None = None,
    ) -> None:
        self.local_path = local_path
        self.offset = offset
        self.total = total
        self.on_chunk = on_chunk
        self.bytes_written = 0
        self._file: BinaryIO | None = None

    @property
    def bytes_done(self) -> int:
        return self.offset + self.bytes_written

    def __enter__(self) -> ChunkWriter:
        mode = "ab" if self.offset > 0 else "wb"
        try:
            self._file = open(self.local_path, mode)
        except OSError as e:
            raise LocalFileError(f"Cannot open {self.local_path}: {e}") from e
        return self

    def write(self, chunk: bytes) -> None:
        if not chunk:
            return
        assert self._file is not None, "ChunkWriter used outside of its context"
        try:
            self._file.write(chunk)
        except OSError as e:
            raise LocalFileError(f"Cannot write {self.local_path}: {e}") from e
        self.bytes_written += len(chunk)
        if self.on_chunk is not None:
            self.on_chunk(self.bytes_done, max(self.total, self.bytes_done))

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if self._file is None:
            return
        try:
            self._file.close()
        except OSError as e:
            if exc is None:
                raise LocalFileError(f"Cannot close {self.local_path}: {e}") from e
        finally:
            self._file = None


class TransferProtocol(ABC):
    """Remote file access used by the patch engine.

    Args:
        config: Remote server settings
    """

    def __init__(self, config: RemoteConfig) -> None:
        self.config = config

    def credentials(self, anonymous: bool = False) -> tuple[str, str]:
        """Username and password for a request."""
        if anonymous:
            return ANONYMOUS_CREDENTIALS
        return self.config.username, self.config.password

    def resolve_url(self, url: str) -> str:
        """Make a URL absolute against the configured address.

        Host path separators are rewritten to forward slashes.
        """
        clean = url.replace(os.sep, "/")
        if urlparse(clean).scheme:
            return clean
        return f"{self.config.address}/{clean.lstrip('/')}"

    @abstractmethod
    def can_reach(self) -> bool:
        """Probe the server with a short timeout. Never raises."""
        ...

    @abstractmethod
    def exists(self, url: str) -> bool:
        """Check whether a remote file exists.

        Raises:
            TransferError: If the server cannot answer the question
        """
        ...

    @abstractmethod
    def read_bytes(self, url: str, anonymous: bool = False) -> bytes:
        """Fetch a small remote file into memory.

        Raises:
            TransferError: If the file cannot be fetched
        """
        ...

    def read_text(self, url: str, anonymous: bool = False) -> str:
        """Fetch a small remote file as text.

        Line separators and NUL characters are stripped. Intended for
        version and checksum files, never for content files.

        Raises:
            TransferError: If the file cannot be fetched
        """
        data = self.read_bytes(url, anonymous=anonymous)
        return remove_line_separators_and_nulls(data.decode("utf-8-sig", errors="replace"))

    @abstractmethod
    def download(
        self,
        url: str,
        local_path: Path,
        total_size: int = 0,
        resume_offset: int = 0,
        anonymous: bool = False,
        on_chunk: ChunkCallback | None = None,
    ) -> TransferResult:
        """Download a remote file to disk.

        Args:
            url: Remote file URL
            local_path: Target path, its parent must exist
            total_size: Expected final size, used when the server does
                not report one
            resume_offset: Bytes already on disk; the transfer appends
                from this offset when greater than zero
            anonymous: Use anonymous credentials
            on_chunk: Called after every written chunk

        Returns:
            TransferResult, failed on network errors

        Raises:
            LocalFileError: If the local file cannot be written
        """
        ...

    def close(self) -> None:
        """Release network resources."""

    def __enter__(self) -> TransferProtocol:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


def create_transfer(config: RemoteConfig) -> TransferProtocol:
    """Create the transfer backend matching the remote address scheme.

    Args:
        config: Remote server settings

    Returns:
        FTP or HTTP transfer backend

    Raises:
        ValueError: If the scheme is not supported
    """
    scheme = config.scheme
    if scheme == "ftp":
        from launchpad_tools.core.ftp_transfer import FTPTransfer

        return FTPTransfer(config)
    if scheme in ("http", "https"):
        from launchpad_tools.core.http_transfer import HTTPTransfer

        return HTTPTransfer(config)
    raise ValueError(f"Unsupported transfer scheme: {scheme}")
