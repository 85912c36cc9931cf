"""HTTP(S) transfer backend built on httpx."""

from __future__ import annotations

from pathlib import Path

import httpx
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

MISSING_STATUS_CODES = {404, 410}


class HTTPTransfer(TransferProtocol):
    """Transfer backend for http:// and https:// servers.

    Resumes use `Range: bytes=<offset>-`. A server answering a range
    request with 200 instead of 206 sends the whole file, which is then
    written from the start.

    Args:
        config: Remote server settings
        client: Optional preconfigured httpx client
    """

    def __init__(self, config: RemoteConfig, client: httpx.Client | None = None):
        super().__init__(config)
        self._client = client

    @property
    def client(self) -> httpx.Client:
        """Get or create sync HTTP client."""
        if self._client is None:
            self._client = httpx.Client(
                timeout=self.config.timeout,
                follow_redirects=True,
            )
        return self._client

    def _auth(self, anonymous: bool) -> httpx.BasicAuth | None:
        username, password = self.credentials(anonymous)
        if not username:
            return None
        return httpx.BasicAuth(username, password)

    def can_reach(self) -> bool:
        logger.info("probing_remote", address=self.config.address)
        try:
            response = self.client.head(
                self.config.address,
                auth=self._auth(False),
                timeout=self.config.probe_timeout,
            )
        except httpx.HTTPError as e:
            logger.warning("remote_unreachable", address=self.config.address, error=str(e))
            return False

        if not response.is_success:
            logger.warning(
                "remote_unreachable",
                address=self.config.address,
                status=response.status_code,
            )
            return False
        return True

    def exists(self, url: str) -> bool:
        remote_url = self.resolve_url(url)
        try:
            response = self.client.head(remote_url, auth=self._auth(False))
        except httpx.HTTPError as e:
            raise TransferError(f"Cannot query {remote_url}: {e}") from e

        if response.status_code in MISSING_STATUS_CODES:
            return False
        if response.is_success:
            return True
        raise TransferError(f"Cannot query {remote_url}: HTTP {response.status_code}")

    def read_bytes(self, url: str, anonymous: bool = False) -> bytes:
        remote_url = self.resolve_url(url)
        try:
            response = self.client.get(remote_url, auth=self._auth(anonymous))
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("remote_read_failed", url=remote_url, error=str(e))
            raise TransferError(f"Failed to read {remote_url}: {e}") from e
        return response.content

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
        headers: dict[str, str] = {}
        if resume_offset > 0:
            headers["Range"] = f"bytes={resume_offset}-"

        try:
            with self.client.stream(
                "GET", remote_url, headers=headers, auth=self._auth(anonymous)
            ) as response:
                if response.status_code == 416:
                    logger.warning(
                        "range_not_satisfiable", url=remote_url, offset=resume_offset
                    )
                    return TransferResult.failed(
                        f"Range not satisfiable at byte {resume_offset} for {remote_url}"
                    )
                response.raise_for_status()

                offset = resume_offset if response.status_code == 206 else 0
                if resume_offset > 0 and offset == 0:
                    logger.info("range_ignored", url=remote_url, offset=resume_offset)

                content_length = response.headers.get("Content-Length")
                if content_length is not None and content_length.isdigit():
                    total = offset + int(content_length)
                else:
                    total = total_size

                with ChunkWriter(local_path, offset, total, on_chunk) as writer:
                    for chunk in response.iter_bytes(chunk_size=self.config.buffer_size):
                        writer.write(chunk)

        except httpx.HTTPError as e:
            logger.error("download_failed", url=remote_url, error=str(e))
            return TransferResult.failed(f"Failed to download {remote_url}: {e}")

        logger.debug(
            "download_complete",
            url=remote_url,
            bytes=writer.bytes_written,
            resumed=offset > 0,
        )
        return TransferResult(
            success=True,
            bytes_written=writer.bytes_written,
            resumed=offset > 0,
        )

    def close(self) -> None:
        """Close HTTP client."""
        if self._client is not None:
            self._client.close()
            self._client = None
