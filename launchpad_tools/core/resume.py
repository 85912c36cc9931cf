"""Persistent resume marker for bulk downloads.

The marker (tagfile) names the manifest entry currently being
transferred. It is written before each file download starts and
emptied once the file is complete, so a non-empty marker after a crash
tells the next install which entry to resume from. Writes use a
temporary file and os.replace so an interrupted write never leaves a
half-written marker behind.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

import structlog

from launchpad_tools.formats.manifest import ManifestEntry, serialize_entry, try_parse_entry

logger = structlog.get_logger()


@dataclass(frozen=True)
class MarkerState:
    """Idle when entry is None, otherwise in progress on entry."""

    entry: ManifestEntry | None = None

    @property
    def in_progress(self) -> bool:
        return self.entry is not None


IDLE = MarkerState()


class ResumeMarker:
    """Single-line tagfile holding the in-flight manifest entry.

    Args:
        path: Location of the tagfile
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def exists(self) -> bool:
        return self.path.is_file()

    def ensure_exists(self) -> None:
        """Create an empty marker if none exists. Existing content is kept."""
        if self.path.exists():
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.touch()
        logger.debug("resume_marker_created", path=str(self.path))

    def state(self) -> MarkerState:
        """Read the persisted state.

        A missing, empty or unparsable marker reads as idle.
        """
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return IDLE

        entry = try_parse_entry(raw.strip())
        if entry is None:
            if raw.strip():
                logger.warning("resume_marker_unreadable", path=str(self.path))
            return IDLE
        return MarkerState(entry)

    def begin(self, entry: ManifestEntry) -> None:
        """Record entry as the file in flight."""
        self._write(f"{serialize_entry(entry)}\n")

    def clear(self) -> None:
        """Truncate the marker to empty."""
        self._write("")

    def _write(self, content: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(f"{self.path.name}.tmp")
        tmp_path.write_text(content, encoding="utf-8")
        os.replace(tmp_path, self.path)
