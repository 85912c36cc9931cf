"""Tests for launchpad_tools.core.http_transfer module."""

import base64
from pathlib import Path

import httpx
import pytest

from launchpad_tools.core.config import RemoteConfig
from launchpad_tools.core.http_transfer import HTTPTransfer
from launchpad_tools.core.transfer import TransferError

ADDRESS = "http://patch.example.com"
CONTENT = b"0123456789abcdefghij"


def _transfer(handler) -> HTTPTransfer:
    config = RemoteConfig(address=ADDRESS, username="user", password="pw", buffer_size=4)
    return HTTPTransfer(config, client=httpx.Client(transport=httpx.MockTransport(handler)))


def _range_server(requests: list[httpx.Request], honour_range: bool = True):
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.url.path != "/game/Linux/bin/a.bin":
            return httpx.Response(404)
        range_header = request.headers.get("Range")
        if range_header and honour_range:
            start = int(range_header.removeprefix("bytes=").rstrip("-"))
            if start >= len(CONTENT):
                return httpx.Response(416)
            return httpx.Response(206, content=CONTENT[start:])
        return httpx.Response(200, content=CONTENT)

    return handler


class TestCanReach:
    """Test connectivity probe."""

    def test_reachable(self):
        transfer = _transfer(lambda request: httpx.Response(200))
        assert transfer.can_reach()

    def test_error_status(self):
        transfer = _transfer(lambda request: httpx.Response(503))
        assert not transfer.can_reach()

    def test_connection_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        assert not _transfer(handler).can_reach()


class TestExists:
    """Test remote existence checks."""

    def test_exists(self):
        requests: list[httpx.Request] = []
        transfer = _transfer(_range_server(requests))
        assert transfer.exists(f"{ADDRESS}/game/Linux/bin/a.bin")
        assert not transfer.exists(f"{ADDRESS}/game/Win64/.provides")
        assert requests[0].method == "HEAD"

    def test_server_error_raises(self):
        transfer = _transfer(lambda request: httpx.Response(500))
        with pytest.raises(TransferError):
            transfer.exists("game/Linux/.provides")


class TestReadText:
    """Test small file reads."""

    def test_read_text_strips_noise(self):
        transfer = _transfer(lambda request: httpx.Response(200, content=b"1.2.3\r\n"))
        assert transfer.read_text("launcher/LauncherVersion.txt") == "1.2.3"

    def test_basic_auth_and_anonymous(self):
        seen: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.headers["Authorization"])
            return httpx.Response(200, content=b"x")

        transfer = _transfer(handler)
        transfer.read_text("a")
        transfer.read_text("a", anonymous=True)

        assert seen[0] == "Basic " + base64.b64encode(b"user:pw").decode()
        assert seen[1] == "Basic " + base64.b64encode(b"anonymous:anonymous").decode()

    def test_missing_file_raises(self):
        transfer = _transfer(lambda request: httpx.Response(404))
        with pytest.raises(TransferError):
            transfer.read_text("launcher/LauncherVersion.txt")


class TestDownload:
    """Test streaming downloads."""

    def test_full_download(self, tmp_path: Path):
        requests: list[httpx.Request] = []
        transfer = _transfer(_range_server(requests))
        progress = []
        local = tmp_path / "a.bin"

        result = transfer.download(
            "game/Linux/bin/a.bin", local, total_size=len(CONTENT),
            on_chunk=lambda done, total: progress.append((done, total)),
        )

        assert result.success
        assert not result.resumed
        assert result.bytes_written == len(CONTENT)
        assert local.read_bytes() == CONTENT
        assert "Range" not in requests[0].headers
        assert progress[-1] == (len(CONTENT), len(CONTENT))

    def test_resume_sends_range(self, tmp_path: Path):
        """A resumed download requests bytes from the local size and appends."""
        requests: list[httpx.Request] = []
        transfer = _transfer(_range_server(requests))
        local = tmp_path / "a.bin"
        local.write_bytes(CONTENT[:7])

        result = transfer.download("game/Linux/bin/a.bin", local, total_size=len(CONTENT), resume_offset=7)

        assert result.success
        assert result.resumed
        assert result.bytes_written == len(CONTENT) - 7
        assert requests[0].headers["Range"] == "bytes=7-"
        assert local.read_bytes() == CONTENT

    def test_range_ignored_rewrites_file(self, tmp_path: Path):
        """A 200 answer to a range request restarts the file."""
        requests: list[httpx.Request] = []
        transfer = _transfer(_range_server(requests, honour_range=False))
        local = tmp_path / "a.bin"
        local.write_bytes(CONTENT[:7])

        result = transfer.download("game/Linux/bin/a.bin", local, resume_offset=7)

        assert result.success
        assert not result.resumed
        assert local.read_bytes() == CONTENT

    def test_range_not_satisfiable(self, tmp_path: Path):
        requests: list[httpx.Request] = []
        transfer = _transfer(_range_server(requests))
        local = tmp_path / "a.bin"
        local.write_bytes(CONTENT)

        result = transfer.download("game/Linux/bin/a.bin", local, resume_offset=len(CONTENT))

        assert not result.success
        assert "Range not satisfiable" in (result.error or "")

    def test_missing_file_fails(self, tmp_path: Path):
        transfer = _transfer(_range_server([]))
        result = transfer.download("game/Linux/bin/missing.bin", tmp_path / "missing.bin")
        assert not result.success

    def test_close(self):
        transfer = _transfer(lambda request: httpx.Response(200))
        client = transfer.client
        transfer.close()
        assert client.is_closed
