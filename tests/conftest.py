"""Pytest configuration and shared fixtures for launchpad_tools tests."""

import hashlib
import tempfile
from collections.abc import Callable, Generator
from pathlib import Path

import pytest

from launchpad_tools.core.config import AppConfig, LauncherConfig, RemoteConfig
from launchpad_tools.core.manifest_store import ManifestStore
from launchpad_tools.core.transfer import (
    ChunkCallback,
    ChunkWriter,
    TransferError,
    TransferProtocol,
    TransferResult,
)
from launchpad_tools.core.types import Module
from launchpad_tools.formats.manifest import Manifest, ManifestEntry, ManifestParser

TEST_ADDRESS = "http://patch.example.com"


def md5_hex(data: bytes) -> str:
    return hashlib.md5(data).hexdigest()


class FakeTransfer(TransferProtocol):
    """In-memory transfer backend serving files by absolute URL.

    Attributes:
        files: Served content by URL
        download_calls: (url, resume_offset) of every download
        failures: URL -> number of downloads that fail before one succeeds
        corruptions: URL -> number of downloads that serve wrong bytes
        truncations: URL -> bytes written before the next download drops
        on_download: Hook called with (url, local_path) before writing
    """

    def __init__(self, config: RemoteConfig) -> None:
        super().__init__(config)
        self.files: dict[str, bytes] = {}
        self.reachable = True
        self.download_calls: list[tuple[str, int]] = []
        self.failures: dict[str, int] = {}
        self.corruptions: dict[str, int] = {}
        self.truncations: dict[str, int] = {}
        self.on_download: Callable[[str, Path], None] | None = None

    def serve(self, url: str, data: bytes) -> None:
        self.files[self.resolve_url(url)] = data

    def can_reach(self) -> bool:
        return self.reachable

    def exists(self, url: str) -> bool:
        if not self.reachable:
            raise TransferError("unreachable")
        return self.resolve_url(url) in self.files

    def read_bytes(self, url: str, anonymous: bool = False) -> bytes:
        remote_url = self.resolve_url(url)
        if not self.reachable or remote_url not in self.files:
            raise TransferError(f"Failed to read {remote_url}")
        return self.files[remote_url]

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
        self.download_calls.append((remote_url, resume_offset))

        if remote_url not in self.files:
            return TransferResult.failed(f"Not found: {remote_url}")
        if self.failures.get(remote_url, 0) > 0:
            self.failures[remote_url] -= 1
            return TransferResult.failed(f"Connection reset: {remote_url}")

        data = self.files[remote_url]
        if self.corruptions.get(remote_url, 0) > 0:
            self.corruptions[remote_url] -= 1
            data = bytes(b ^ 0xFF for b in data)

        if self.on_download is not None:
            self.on_download(remote_url, local_path)

        cut = self.truncations.pop(remote_url, None)
        if cut is not None:
            with ChunkWriter(local_path, resume_offset, len(data), on_chunk) as writer:
                writer.write(data[resume_offset:cut])
            return TransferResult.failed(f"Connection reset after {cut} bytes: {remote_url}")

        remaining = data[resume_offset:]
        step = self.config.buffer_size
        with ChunkWriter(local_path, resume_offset, len(data), on_chunk) as writer:
            for start in range(0, len(remaining), step):
                writer.write(remaining[start:start + step])
        return TransferResult(
            success=True,
            bytes_written=writer.bytes_written,
            resumed=resume_offset > 0,
        )


class PatchServer:
    """Publishes module content on a FakeTransfer the way a patch server lays it out."""

    def __init__(self, transfer: FakeTransfer, store: ManifestStore) -> None:
        self.transfer = transfer
        self.store = store

    def publish(self, module: Module, files: dict[str, bytes]) -> Manifest:
        entries = [
            ManifestEntry(relative_path=path, content_hash=md5_hex(data), size=len(data))
            for path, data in files.items()
        ]
        manifest = Manifest(entries=entries)
        for entry, data in zip(entries, files.values(), strict=True):
            self.transfer.serve(self.store.content_url(module, entry), data)

        manifest_bytes = ManifestParser().build(manifest)
        self.transfer.serve(self.store.manifest_url(module), manifest_bytes)
        self.transfer.serve(self.store.checksum_url(module), f"{md5_hex(manifest_bytes)}\n".encode())
        return manifest


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmp_dir:
        yield Path(tmp_dir)


@pytest.fixture
def app_config(tmp_path: Path) -> AppConfig:
    """Configuration rooted in a temporary directory."""
    return AppConfig(
        local_dir=tmp_path / "launcher",
        game_dir=tmp_path / "game",
        launcher_download_dir=tmp_path / "launcher-staging",
        remote=RemoteConfig(address=TEST_ADDRESS, file_retries=2, buffer_size=16),
        launcher=LauncherConfig(
            executable_path="Example/Binaries/Linux/Example",
            version="1.0.0",
        ),
    )


@pytest.fixture
def store(app_config: AppConfig) -> ManifestStore:
    """Manifest store for the test configuration."""
    return ManifestStore(app_config)


@pytest.fixture
def fake_transfer(app_config: AppConfig) -> FakeTransfer:
    """In-memory transfer backend."""
    return FakeTransfer(app_config.remote)


@pytest.fixture
def server(fake_transfer: FakeTransfer, store: ManifestStore) -> PatchServer:
    """Patch server publishing onto the fake transfer."""
    return PatchServer(fake_transfer, store)


@pytest.fixture
def make_entry() -> Callable[..., ManifestEntry]:
    """Factory for manifest entries."""

    def _make(path: str = "dat/a.bin", content_hash: str = "abc123", size: int = 100) -> ManifestEntry:
        return ManifestEntry(relative_path=path, content_hash=content_hash, size=size)

    return _make


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest settings."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
