"""Install, update and verify workflows for launcher and game modules.

The engine is protocol agnostic: it talks to a TransferProtocol, asks
the ManifestStore where things live, and records the file in flight in
the module's resume marker. Files are processed one at a time in
manifest order.

Download-One (download_entry) decides per file whether to skip, resume
or restart:

- local file with the expected size and hash: skip
- same size, wrong hash: delete and download from zero
- smaller than expected: resume at the local size
- larger than expected: delete and download from zero
- missing: download from zero

Install downloads every entry and then runs Verify, which owns the
final result. Update downloads only the entries that changed between
the previous and the current manifest. Verify hashes every file and
redownloads broken ones, bounded by the configured retry count.
"""

from __future__ import annotations

import os
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

import structlog

from launchpad_tools.core.config import AppConfig
from launchpad_tools.core.integrity import compute_file_md5, hashes_match, is_intact
from launchpad_tools.core.manifest_store import ManifestStore
from launchpad_tools.core.progress import (
    BytesTransferred,
    CancellationToken,
    FileFinished,
    FileStarted,
    NullSink,
    OperationCancelledError,
    OperationFinished,
    ProgressSink,
)
from launchpad_tools.core.resume import ResumeMarker
from launchpad_tools.core.transfer import (
    LocalFileError,
    TransferError,
    TransferProtocol,
    TransferResult,
)
from launchpad_tools.core.types import ManifestGeneration, Module, Operation, Stage, SystemTarget
from launchpad_tools.core.version import Version
from launchpad_tools.formats.manifest import Manifest, ManifestEntry

logger = structlog.get_logger()

EXECUTABLE_MODE = 0o754


@dataclass(frozen=True)
class UpdateItem:
    """An entry selected for update.

    Attributes:
        entry: Entry from the current manifest
        replaces: Previous-generation entry with the same path, if any
    """

    entry: ManifestEntry
    replaces: ManifestEntry | None = None


def diff_manifests(current: Manifest, previous: Manifest) -> list[UpdateItem]:
    """Select the entries of current that are not in previous.

    Args:
        current: Freshly downloaded manifest
        previous: Manifest the local install was built from

    Returns:
        Entries requiring update in current-manifest order, each paired
        with the previous entry of the same path when one exists
    """
    items = []
    for entry in current:
        if previous.contains(entry):
            continue
        items.append(UpdateItem(entry, previous.find_by_path(entry.relative_path)))
    return items


@dataclass
class OperationResult:
    """Outcome of an install, update or verify run.

    Attributes:
        module: Module the operation ran on
        operation: Operation kind
        success: Whether the module ended in the expected state
        stage: Stage in flight when the operation failed
        error: Error description if the operation failed
        failed_entries: Serialized entries that could not be made intact
        files_processed: Files written during the operation
    """

    module: Module
    operation: Operation
    success: bool
    stage: Stage | None = None
    error: str | None = None
    failed_entries: list[str] = field(default_factory=list)
    files_processed: int = 0

    @property
    def summary(self) -> str:
        """One-line description for status displays."""
        name = f"{self.operation.value.capitalize()} of {self.module.value}"
        if self.success:
            return f"{name} finished, {self.files_processed} file(s) written"
        stage = self.stage.value if self.stage else "unknown"
        return f"{name} failed during {stage}: {self.error}"


class PatchEngine:
    """Drives install, update and verify for one remote server.

    Callers must not run two operations on the same module at once.

    Args:
        transfer: Transfer backend for the configured server
        store: Local and remote path mapping
        config: Application configuration
        sink: Receiver for progress events
        cancel_token: Token checked between chunks and between files
        posix: Whether downloaded executables get the executable bit,
            defaults to the host platform
    """

    def __init__(
        self,
        transfer: TransferProtocol,
        store: ManifestStore,
        config: AppConfig,
        sink: ProgressSink | None = None,
        cancel_token: CancellationToken | None = None,
        posix: bool | None = None,
    ) -> None:
        self.transfer = transfer
        self.store = store
        self.config = config
        self.sink: ProgressSink = sink or NullSink()
        self.cancel_token = cancel_token or CancellationToken()
        self.posix = os.name == "posix" if posix is None else posix

        self._stage = Stage.MANIFEST
        self._files_processed = 0

    @property
    def file_retries(self) -> int:
        return self.config.remote.file_retries

    def marker(self, module: Module) -> ResumeMarker:
        """Resume marker of a module."""
        return ResumeMarker(self.store.tagfile_path(module))

    # Server queries

    def can_patch(self) -> bool:
        """Whether the patch server answers at all."""
        return self.transfer.can_reach()

    def is_platform_available(self, platform: SystemTarget) -> bool:
        """Whether the server publishes a game build for platform."""
        try:
            return self.transfer.exists(self.store.provides_url(platform))
        except TransferError as e:
            logger.warning("platform_check_failed", platform=platform.value, error=str(e))
            return False

    def get_changelog(self) -> str:
        """Fetch the launcher changelog.

        Raises:
            TransferError: If the changelog cannot be fetched
        """
        data = self.transfer.read_bytes(self.store.changelog_url())
        return data.decode("utf-8-sig", errors="replace")

    def is_manifest_outdated(self, module: Module) -> bool:
        """Compare the local manifest against the remote checksum.

        Raises:
            TransferError: If the remote checksum cannot be read
        """
        path = self.store.manifest_path(module)
        if not path.is_file():
            return True

        remote_checksum = self.transfer.read_text(self.store.checksum_url(module)).strip()
        local_checksum = compute_file_md5(path)
        outdated = not hashes_match(local_checksum, remote_checksum)
        logger.debug(
            "manifest_checksum_compared",
            module=module.value,
            local=local_checksum,
            remote=remote_checksum,
            outdated=outdated,
        )
        return outdated

    def refresh_manifest(self, module: Module) -> bool:
        """Download the module manifest if it is missing or outdated.

        The new manifest is downloaded next to the current one and only
        takes its place once complete: the current manifest is then
        rotated to the previous generation and the download moved in.
        A failed download leaves both generations untouched.

        Returns:
            True if a new manifest was downloaded

        Raises:
            TransferError: If the checksum or the manifest cannot be fetched
            LocalFileError: If the manifest cannot be written
        """
        if not self.is_manifest_outdated(module):
            logger.debug("manifest_current", module=module.value)
            return False

        path = self.store.manifest_path(module)
        partial = self.store.partial_manifest_path(module)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            partial.unlink(missing_ok=True)
        except OSError as e:
            raise LocalFileError(f"Cannot prepare manifest {partial}: {e}") from e

        try:
            result = self.transfer.download(self.store.manifest_url(module), partial)
            if not result.success:
                raise TransferError(result.error or f"Failed to download the {module} manifest")
            self.store.rotate(module)
            os.replace(partial, path)
        except OSError as e:
            raise LocalFileError(f"Cannot replace manifest {path}: {e}") from e
        finally:
            partial.unlink(missing_ok=True)

        logger.info("manifest_refreshed", module=module.value, bytes=result.bytes_written)
        return True

    def is_module_outdated(self, module: Module) -> bool:
        """Compare the local module version against the server's.

        The game is outdated when its local version file is missing.

        Raises:
            TransferError: If the remote version cannot be read
            VersionError: If either version does not parse
        """
        if module is Module.LAUNCHER:
            remote_text = self.transfer.read_text(
                self.store.version_url(module),
                anonymous=self.config.launcher.use_official_updates,
            )
            local = Version.parse(self.config.launcher.version)
        else:
            version_path = self.store.local_version_path()
            if not version_path.is_file():
                logger.info("local_version_missing", module=module.value, path=str(version_path))
                return True
            local = Version.parse(version_path.read_text(encoding="utf-8"))
            remote_text = self.transfer.read_text(self.store.version_url(module))

        remote = Version.parse(remote_text)
        logger.debug("versions_compared", module=module.value, local=str(local), remote=str(remote))
        return local < remote

    def is_game_installed(self) -> bool:
        """Whether a complete game install is present locally."""
        marker = self.marker(Module.GAME)
        return (
            self.store.content_dir(Module.GAME).is_dir()
            and marker.exists()
            and not marker.state().in_progress
            and self.store.local_version_path().is_file()
        )

    # Download-One

    def download_entry(
        self,
        module: Module,
        entry: ManifestEntry,
        old_entry: ManifestEntry | None = None,
    ) -> TransferResult:
        """Bring one local file in line with its manifest entry.

        Args:
            module: Module the entry belongs to
            entry: Expected file
            old_entry: Previous entry of the same path; an intact file
                matching it is deleted instead of resumed

        Returns:
            TransferResult, skipped when the file was already intact

        Raises:
            LocalFileError: If local files cannot be written
            OperationCancelledError: If the operation is cancelled
        """
        self.cancel_token.raise_if_cancelled()
        local_path = self.store.local_path(module, entry)
        marker = self.marker(module)

        try:
            local_path.parent.mkdir(parents=True, exist_ok=True)
            marker.begin(entry)
            offset = self._prepare_local_file(local_path, entry, old_entry)
        except OSError as e:
            raise LocalFileError(f"Cannot prepare {local_path}: {e}") from e

        if offset is None:
            result = TransferResult(success=True, skipped=True)
        else:
            def on_chunk(bytes_done: int, bytes_total: int) -> None:
                self.cancel_token.raise_if_cancelled()
                self.sink.emit(
                    BytesTransferred(module, entry.wire_path, bytes_done, bytes_total)
                )

            result = self.transfer.download(
                self.store.content_url(module, entry),
                local_path,
                total_size=entry.size,
                resume_offset=offset,
                on_chunk=on_chunk,
            )
            if not result.success:
                logger.warning(
                    "entry_download_failed",
                    module=module.value,
                    path=entry.wire_path,
                    error=result.error,
                )
                return result

        try:
            self._mark_executable(local_path)
            marker.clear()
        except OSError as e:
            raise LocalFileError(f"Cannot finalize {local_path}: {e}") from e

        return result

    def _prepare_local_file(
        self,
        local_path: Path,
        entry: ManifestEntry,
        old_entry: ManifestEntry | None,
    ) -> int | None:
        """Return the resume offset, or None when the file is already intact."""
        if old_entry is not None and old_entry != entry and is_intact(local_path, old_entry):
            logger.debug("replacing_stale_file", path=entry.wire_path)
            local_path.unlink()

        if not local_path.is_file():
            return 0

        local_size = local_path.stat().st_size
        if local_size == entry.size:
            if is_intact(local_path, entry):
                logger.debug("entry_already_intact", path=entry.wire_path)
                return None
            logger.debug("entry_hash_mismatch", path=entry.wire_path)
            local_path.unlink()
            return 0

        if local_size < entry.size:
            logger.debug("entry_resuming", path=entry.wire_path, offset=local_size)
            return local_size

        logger.debug("entry_oversized", path=entry.wire_path, size=local_size, expected=entry.size)
        local_path.unlink()
        return 0

    def _mark_executable(self, path: Path) -> None:
        if not self.posix:
            return
        launcher = self.config.launcher
        if path.suffix.lower() in launcher.executable_extensions or path.name == launcher.executable_name:
            os.chmod(path, EXECUTABLE_MODE)
            logger.debug("marked_executable", path=str(path))

    # Bulk operations

    def install(self, module: Module) -> OperationResult:
        """Download the full module and verify it.

        An interrupted install resumes from the entry named in the
        module's resume marker.
        """
        return self._run(module, Operation.INSTALL, self._install)

    def update(self, module: Module) -> OperationResult:
        """Download the entries that changed since the previous manifest."""
        return self._run(module, Operation.UPDATE, self._update)

    def verify(self, module: Module) -> OperationResult:
        """Hash every file of the module and repair broken ones."""
        return self._run(module, Operation.VERIFY, self._verify)

    def _run(
        self,
        module: Module,
        operation: Operation,
        body: Callable[[Module, Operation], OperationResult],
    ) -> OperationResult:
        self._stage = Stage.MANIFEST
        self._files_processed = 0
        log = logger.bind(module=module.value, operation=operation.value)
        log.info("operation_started")

        try:
            result = body(module, operation)
        except OperationCancelledError as e:
            log.warning("operation_cancelled", stage=self._stage.value)
            result = self._failed(module, operation, str(e))
        except (TransferError, LocalFileError) as e:
            result = self._failed(module, operation, str(e))
        except OSError as e:
            # Local reads while hashing, e.g. EIO or EACCES
            result = self._failed(module, operation, f"Local file error: {e}")
        except ValueError as e:
            # Entries escaping the content directory, unreadable manifest files
            result = self._failed(module, operation, str(e))

        if result.success:
            log.info("operation_finished", files=result.files_processed)
        else:
            log.error(
                "operation_failed",
                stage=result.stage.value if result.stage else None,
                error=result.error,
                failed=len(result.failed_entries),
            )
        self.sink.emit(OperationFinished(result))
        return result

    def _failed(
        self,
        module: Module,
        operation: Operation,
        error: str,
        failed_entries: list[str] | None = None,
    ) -> OperationResult:
        return OperationResult(
            module=module,
            operation=operation,
            success=False,
            stage=self._stage,
            error=error,
            failed_entries=failed_entries or [],
            files_processed=self._files_processed,
        )

    def _succeeded(self, module: Module, operation: Operation) -> OperationResult:
        return OperationResult(
            module=module,
            operation=operation,
            success=True,
            files_processed=self._files_processed,
        )

    def _load_current(self, module: Module) -> Manifest | None:
        if not self.store.has_manifest(module):
            return None
        return self.store.load(module)

    def _install(self, module: Module, operation: Operation) -> OperationResult:
        marker = self.marker(module)
        try:
            marker.ensure_exists()
        except OSError as e:
            raise LocalFileError(f"Cannot create resume marker: {e}") from e
        resume_from = marker.state().entry

        self.refresh_manifest(module)
        manifest = self._load_current(module)
        if manifest is None:
            return self._failed(module, operation, f"No {module} manifest available")

        start = 0
        if resume_from is not None:
            index = manifest.index_of(resume_from)
            if index is not None:
                start = index
                logger.info("install_resuming", module=module.value, path=resume_from.wire_path)

        self._stage = Stage.DOWNLOAD
        total = len(manifest)
        for index, entry in enumerate(manifest.entries[start:], start=start + 1):
            self.cancel_token.raise_if_cancelled()
            self.sink.emit(FileStarted(module, Stage.DOWNLOAD, entry.wire_path, index, total))
            result = self.download_entry(module, entry)
            if result.success and not result.skipped:
                self._files_processed += 1
            self.sink.emit(
                FileFinished(module, Stage.DOWNLOAD, entry.wire_path, index, total, result.success)
            )

        return self._verify_manifest(module, operation, manifest)

    def _update(self, module: Module, operation: Operation) -> OperationResult:
        self.refresh_manifest(module)
        current = self._load_current(module)
        if current is None:
            return self._failed(module, operation, f"No {module} manifest available")
        previous = self.store.load(module, ManifestGeneration.PREVIOUS)

        items = diff_manifests(current, previous)
        logger.info("update_selected", module=module.value, files=len(items))

        self._stage = Stage.UPDATE
        for index, item in enumerate(items, start=1):
            self.cancel_token.raise_if_cancelled()
            path = item.entry.wire_path
            self.sink.emit(FileStarted(module, Stage.UPDATE, path, index, len(items)))
            ok = self._update_entry(module, item)
            self.sink.emit(FileFinished(module, Stage.UPDATE, path, index, len(items), ok))
            if not ok:
                return self._failed(
                    module,
                    operation,
                    f"Failed to update {path} after {self.file_retries + 1} attempt(s)",
                    [str(item.entry)],
                )

        return self._succeeded(module, operation)

    def _update_entry(self, module: Module, item: UpdateItem) -> bool:
        local_path = self.store.local_path(module, item.entry)
        for attempt in range(1, self.file_retries + 2):
            result = self.download_entry(module, item.entry, item.replaces)
            if result.success and (result.skipped or is_intact(local_path, item.entry)):
                if not result.skipped:
                    self._files_processed += 1
                return True
            logger.warning(
                "update_attempt_failed",
                module=module.value,
                path=item.entry.wire_path,
                attempt=attempt,
                error=result.error or "integrity check failed",
            )
        return False

    def _verify(self, module: Module, operation: Operation) -> OperationResult:
        manifest = self._load_current(module)
        if manifest is None:
            self.refresh_manifest(module)
            manifest = self._load_current(module)
        if manifest is None:
            return self._failed(module, operation, f"No {module} manifest available")
        return self._verify_manifest(module, operation, manifest)

    def _verify_manifest(
        self, module: Module, operation: Operation, manifest: Manifest
    ) -> OperationResult:
        self._stage = Stage.VERIFY
        total = len(manifest)
        broken: list[ManifestEntry] = []

        for index, entry in enumerate(manifest, start=1):
            self.cancel_token.raise_if_cancelled()
            self.sink.emit(FileStarted(module, Stage.VERIFY, entry.wire_path, index, total))
            intact = is_intact(self.store.local_path(module, entry), entry)
            self.sink.emit(FileFinished(module, Stage.VERIFY, entry.wire_path, index, total, intact))
            if not intact:
                broken.append(entry)

        logger.info("verify_scanned", module=module.value, files=total, broken=len(broken))

        failed: list[str] = []
        for index, entry in enumerate(broken, start=1):
            self.sink.emit(FileStarted(module, Stage.DOWNLOAD, entry.wire_path, index, len(broken)))
            repaired = self._repair_entry(module, entry)
            self.sink.emit(
                FileFinished(module, Stage.DOWNLOAD, entry.wire_path, index, len(broken), repaired)
            )
            if not repaired:
                failed.append(str(entry))

        if failed:
            return self._failed(
                module,
                operation,
                f"{len(failed)} file(s) could not be repaired",
                failed,
            )
        return self._succeeded(module, operation)

    def _repair_entry(self, module: Module, entry: ManifestEntry) -> bool:
        local_path = self.store.local_path(module, entry)
        for attempt in range(1, self.file_retries + 1):
            result = self.download_entry(module, entry)
            if result.success and is_intact(local_path, entry):
                if not result.skipped:
                    self._files_processed += 1
                logger.info("entry_repaired", module=module.value, path=entry.wire_path, attempt=attempt)
                return True
            logger.warning(
                "repair_attempt_failed",
                module=module.value,
                path=entry.wire_path,
                attempt=attempt,
                error=result.error or "integrity check failed",
            )
        return False
