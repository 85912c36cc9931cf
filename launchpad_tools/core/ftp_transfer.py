"""FTP transfer backend built on ftplib."""

from __future__ import annotations

import ftplib
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from urllib.parse import unquote, urlparse

import structlog

from launchpad_tools.core.config import RemoteConfig
from launchpad_tools.core.transfer import (
    ChunkCallback,
    ChunkWriter,
    TransferError,
    TransferProtocol,
    TransferResult,
)

logger = structlog.get_logger()

DEFAULT_FTP_PORT = 21

# Replies meaning the server does not implement a command
UNSUPPORTED_COMMAND_CODES = {"500", "501", "502", "504"}


def _reply_code(error: ftplib.Error) -> str:
    return str(error)[:3]


class FTPTransfer(TransferProtocol):
    """Transfer backend for ftp:// servers.

    Every operation opens its own passive-mode session. Resumes use
    REST; when a server rejects REST the file is downloaded again from
    the first byte.

    Args:
        config: Remote server settings
        ftp_factory: Callable returning an unconnected ftplib.FTP
    """

    def __init__(
        self,
        config: RemoteConfig,
        ftp_factory: Callable[..., ftplib.FTP] = ftplib.FTP,
    ):
        super().__init__(config)
        self.ftp_factory = ftp_factory

    @staticmethod
    def remote_path(url: str) -> str:
        """Server-side path of a URL."""
        return unquote(urlparse(url).path) or "/"

    @contextmanager
    def session(
        self, anonymous: bool = False, timeout: float | None = None
    ) -> Iterator[ftplib.FTP]:
        """Open a logged-in binary-mode session."""
        parsed = urlparse(self.config.address)
        username, password = self.credentials(anonymous)
        session_timeout = timeout if timeout is not None else self.config.timeout

        ftp = self.ftp_factory(timeout=session_timeout)
        try:
            ftp.connect(parsed.hostname or "", parsed.port or DEFAULT_FTP_PORT, timeout=session_timeout)
            ftp.login(username, password)
            ftp.set_pasv(True)
            ftp.voidcmd("TYPE I")
            yield ftp
        finally:
            ftp.close()

    def can_reach(self) -> bool:
        logger.info("probing_remote", address=self.config.address)
        base_path = self.remote_path(self.config.address)
        try:
            with self.session(timeout=self.config.probe_timeout) as ftp:
                ftp.nlst(base_path)
        except ftplib.all_errors as e:
            logger.warning("remote_unreachable", address=self.config.address, error=str(e))
            return False
        return True

    def exists(self, url: str) -> bool:
        remote_url = self.resolve_url(url)
        path = self.remote_path(remote_url)
        try:
            with self.session() as ftp:
                ftp.size(path)
        except ftplib.error_perm as e:
            if _reply_code(e) == "550":
                return False
            raise TransferError(f"Cannot query {remote_url}: {e}") from e
        except ftplib.all_errors as e:
            raise TransferError(f"Cannot query {remote_url}: {e}") from e
        return True

    def read_bytes(self, url: str, anonymous: bool = False) -> bytes:
        remote_url = self.resolve_url(url)
        path = self.remote_path(remote_url)
        buffer = bytearray()
        try:
            with self.session(anonymous) as ftp:
                ftp.retrbinary(f"RETR {path}", buffer.extend, blocksize=self.config.buffer_size)
        except ftplib.all_errors as e:
            logger.error("remote_read_failed", url=remote_url, error=str(e))
            raise TransferError(f"Failed to read {remote_url}: {e}") from e
        return bytes(buffer)

    @staticmethod
    def _remote_size(ftp: ftplib.FTP, path: str) -> int | None:
        """SIZE of a remote file, None when the server lacks SIZE."""
        try:
            return ftp.size(path)
        except ftplib.error_perm as e:
            if _reply_code(e) in UNSUPPORTED_COMMAND_CODES:
                return None
            raise

    def _retrieve(
        self,
        ftp: ftplib.FTP,
        path: str,
        local_path: Path,
        offset: int,
        total: int,
        on_chunk: ChunkCallback | None,
    ) -> int:
        with ChunkWriter(local_path, offset, total, on_chunk) as writer:
            ftp.retrbinary(
                f"RETR {path}",
                writer.write,
                blocksize=self.config.buffer_size,
                rest=offset or None,
            )
        return writer.bytes_written

    def download(
        self,
        url: str,
        local_path: Path,
        total_size: int = 0,
        resume_offset: int = 0,
        anonymous: bool = False,
        on_chunk: ChunkCallback | None = None,
    ) -> TransferResult:
        remote_url = self.resolve_url(url)
        path = self.remote_path(remote_url)
        offset = resume_offset

        try:
            with self.session(anonymous) as ftp:
                remote_size = self._remote_size(ftp, path)
                total = remote_size if remote_size is not None else total_size

                try:
                    written = self._retrieve(ftp, path, local_path, offset, total, on_chunk)
                except (ftplib.error_perm, ftplib.error_reply) as e:
                    if offset == 0 or _reply_code(e) not in UNSUPPORTED_COMMAND_CODES:
                        raise
                    logger.warning(
                        "rest_unsupported",
                        url=remote_url,
                        offset=offset,
                        reply=str(e),
                    )
                    offset = 0
                    written = self._retrieve(ftp, path, local_path, 0, total, on_chunk)

        except ftplib.all_errors as e:
            logger.error("download_failed", url=remote_url, error=str(e))
            return TransferResult.failed(f"Failed to download {remote_url}: {e}")

        logger.debug("download_complete", url=remote_url, bytes=written, resumed=offset > 0)
        return TransferResult(success=True, bytes_written=written, resumed=offset > 0)
