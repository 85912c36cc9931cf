"""Local manifest storage and module path mapping.

All Module -> location decisions live here: where a module's manifests
and tagfile are kept on disk, where its content is installed, and which
remote URLs serve its manifest, checksum, version and content files.

Remote layout relative to the configured address:

    /launcher/LauncherManifest.txt
    /launcher/LauncherManifest.checksum
    /launcher/LauncherVersion.txt
    /launcher/changelog.html
    /launcher/bin/...
    /game/<platform>/GameManifest.txt
    /game/<platform>/GameManifest.checksum
    /game/<platform>/.provides
    /game/<platform>/bin/GameVersion.txt
    /game/<platform>/bin/...
"""

from __future__ import annotations

import os
from pathlib import Path

import structlog

from launchpad_tools.core.config import AppConfig
from launchpad_tools.core.types import ManifestGeneration, Module, SystemTarget
from launchpad_tools.formats.manifest import Manifest, ManifestEntry, ManifestParser

logger = structlog.get_logger()

MANIFEST_NAMES = {
    Module.LAUNCHER: "LauncherManifest",
    Module.GAME: "GameManifest",
}

TAGFILE_NAMES = {
    Module.LAUNCHER: ".launcher",
    Module.GAME: ".game",
}

PREVIOUS_SUFFIX = ".old"
PARTIAL_SUFFIX = ".tmp"
GAME_VERSION_FILE = "GameVersion.txt"
LAUNCHER_VERSION_FILE = "LauncherVersion.txt"
CHANGELOG_FILE = "changelog.html"


class ManifestStore:
    """Loads manifests and derives module paths and URLs.

    Args:
        config: Application configuration
    """

    def __init__(self, config: AppConfig) -> None:
        self.config = config
        self.parser = ManifestParser()

    @property
    def address(self) -> str:
        return self.config.remote.address

    @property
    def system_target(self) -> SystemTarget:
        return self.config.launcher.system_target

    # Remote locations

    def remote_module_root(self, module: Module) -> str:
        """Remote directory holding a module's manifest."""
        if module is Module.LAUNCHER:
            return f"{self.address}/launcher"
        return f"{self.address}/game/{self.system_target.value}"

    def manifest_url(self, module: Module) -> str:
        return f"{self.remote_module_root(module)}/{MANIFEST_NAMES[module]}.txt"

    def checksum_url(self, module: Module) -> str:
        return f"{self.remote_module_root(module)}/{MANIFEST_NAMES[module]}.checksum"

    def content_root_url(self, module: Module) -> str:
        """Remote directory holding a module's files."""
        return f"{self.remote_module_root(module)}/bin"

    def content_url(self, module: Module, entry: ManifestEntry) -> str:
        return f"{self.content_root_url(module)}/{entry.wire_path}"

    def version_url(self, module: Module) -> str:
        if module is Module.LAUNCHER:
            return f"{self.remote_module_root(module)}/{LAUNCHER_VERSION_FILE}"
        return f"{self.content_root_url(module)}/{GAME_VERSION_FILE}"

    def provides_url(self, platform: SystemTarget) -> str:
        """Marker whose presence means the server has a build for platform."""
        return f"{self.address}/game/{platform.value}/.provides"

    def changelog_url(self) -> str:
        return f"{self.address}/launcher/{CHANGELOG_FILE}"

    # Local locations

    def manifest_path(
        self, module: Module, generation: ManifestGeneration = ManifestGeneration.CURRENT
    ) -> Path:
        path = self.config.local_dir / f"{MANIFEST_NAMES[module]}.txt"
        if generation is ManifestGeneration.PREVIOUS:
            return path.with_name(path.name + PREVIOUS_SUFFIX)
        return path

    def partial_manifest_path(self, module: Module) -> Path:
        """Download target for a new manifest until it is complete."""
        path = self.manifest_path(module)
        return path.with_name(path.name + PARTIAL_SUFFIX)

    def tagfile_path(self, module: Module) -> Path:
        return self.config.local_dir / TAGFILE_NAMES[module]

    def content_dir(self, module: Module) -> Path:
        """Local directory a module's files are installed into."""
        if module is Module.LAUNCHER:
            return self.config.resolved_launcher_download_dir
        return self.config.resolved_game_dir

    def local_version_path(self) -> Path:
        return self.content_dir(Module.GAME) / GAME_VERSION_FILE

    def local_path(self, module: Module, entry: ManifestEntry) -> Path:
        """Local file for an entry.

        Raises:
            ValueError: If the entry's path escapes the content directory
        """
        root = self.content_dir(module)
        path = root / entry.relative_path
        root_abs = os.path.abspath(root)
        if os.path.commonpath([root_abs, os.path.abspath(path)]) != root_abs:
            raise ValueError(
                f"Manifest path escapes the {module} directory: {entry.relative_path}"
            )
        return path

    # Manifests

    def has_manifest(self, module: Module) -> bool:
        """Whether the current manifest exists locally."""
        return self.manifest_path(module).is_file()

    def load(
        self, module: Module, generation: ManifestGeneration = ManifestGeneration.CURRENT
    ) -> Manifest:
        """Load a manifest from disk.

        A missing file yields an empty manifest. Lines that do not
        parse are skipped.
        """
        path = self.manifest_path(module, generation)
        if not path.is_file():
            logger.debug("manifest_missing", module=module.value, generation=generation.value)
            return Manifest()

        manifest = self.parser.parse_file(path)
        logger.debug(
            "manifest_loaded",
            module=module.value,
            generation=generation.value,
            entries=len(manifest),
        )
        return manifest

    def rotate(self, module: Module) -> None:
        """Move the current manifest to the previous generation.

        Any stale previous manifest is deleted first. Does nothing when
        there is no current manifest.
        """
        current = self.manifest_path(module)
        previous = self.manifest_path(module, ManifestGeneration.PREVIOUS)

        if not current.exists():
            return

        previous.unlink(missing_ok=True)
        current.replace(previous)
        logger.debug("manifest_rotated", module=module.value, previous=str(previous))
