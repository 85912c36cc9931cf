"""Server-side manifest generation.

Walks a content directory, hashes every file and writes
`<Module>Manifest.txt` plus a `<Module>Manifest.checksum` holding the MD5
of the manifest file. Clients compare that checksum against their local
manifest to decide whether to download a new one.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

import structlog

from launchpad_tools.core.integrity import compute_file_md5
from launchpad_tools.core.manifest_store import MANIFEST_NAMES
from launchpad_tools.core.types import Module
from launchpad_tools.formats.manifest import Manifest, ManifestEntry, ManifestParser

logger = structlog.get_logger()

BLACKLISTED_SUFFIXES = (".install", ".update")


@dataclass(frozen=True)
class GeneratedManifest:
    """Files written by a generator run."""

    manifest: Manifest
    manifest_path: Path
    checksum_path: Path
    checksum: str


# Called after every hashed file with (entry, completed, total)
GenerationCallback = Callable[[ManifestEntry, int, int], None]


def is_blacklisted(path: Path) -> bool:
    """Whether a file must stay out of generated manifests."""
    if path.name.endswith(BLACKLISTED_SUFFIXES):
        return True
    return any(
        path.name in (f"{name}.txt", f"{name}.checksum") for name in MANIFEST_NAMES.values()
    )


def collect_files(target_dir: Path) -> list[Path]:
    """Files under target_dir that belong in a manifest, in sorted path order."""
    files = [
        path for path in target_dir.rglob("*")
        if path.is_file() and not is_blacklisted(path)
    ]
    return sorted(files, key=lambda p: p.relative_to(target_dir).as_posix())


def create_entry(target_dir: Path, path: Path) -> ManifestEntry:
    """Build the manifest entry of one file."""
    return ManifestEntry(
        relative_path=path.relative_to(target_dir).as_posix(),
        content_hash=compute_file_md5(path),
        size=path.stat().st_size,
    )


def generate_manifest(
    target_dir: Path,
    module: Module,
    output_dir: Path | None = None,
    on_progress: GenerationCallback | None = None,
) -> GeneratedManifest:
    """Generate the manifest and checksum files for a content directory.

    Args:
        target_dir: Root of the module content (the server's `bin` directory)
        module: Module the manifest describes, selects the file names
        output_dir: Where to write the files, defaults to the parent of
            target_dir
        on_progress: Called after every hashed file

    Returns:
        The generated manifest and the paths written

    Raises:
        ValueError: If target_dir is not a directory
    """
    if not target_dir.is_dir():
        raise ValueError(f"Not a directory: {target_dir}")

    destination = output_dir if output_dir is not None else target_dir.resolve().parent
    destination.mkdir(parents=True, exist_ok=True)

    name = MANIFEST_NAMES[module]
    manifest_path = destination / f"{name}.txt"
    checksum_path = destination / f"{name}.checksum"

    files = collect_files(target_dir)
    entries: list[ManifestEntry] = []
    for completed, path in enumerate(files, start=1):
        entry = create_entry(target_dir, path)
        entries.append(entry)
        if on_progress is not None:
            on_progress(entry, completed, len(files))

    manifest = Manifest(entries=entries)
    ManifestParser().build_file(manifest, manifest_path)

    checksum = compute_file_md5(manifest_path)
    checksum_path.write_text(f"{checksum}\n", encoding="utf-8")

    logger.info(
        "manifest_generated",
        module=module.value,
        files=len(entries),
        path=str(manifest_path),
    )
    return GeneratedManifest(manifest, manifest_path, checksum_path, checksum)
