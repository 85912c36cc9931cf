"""Parser and builder for plain-text file manifests.

A manifest lists every tracked file of a module, one entry per line:

    relative/path/to/file.bin:d41d8cd98f00b204e9800998ecf8427e:1024

- Field 1: path relative to the module's content root, forward slashes
- Field 2: hex MD5 digest of the file content
- Field 3: file size in bytes (non-negative decimal)

Lines that do not parse are skipped. Line order is significant: it is
the order in which files are downloaded and verified.
"""

from __future__ import annotations

import io
import os
import re
from collections.abc import Iterator
from typing import BinaryIO

import structlog
from pydantic import BaseModel, ConfigDict, Field, field_validator

from launchpad_tools.core.utils import (
    remove_line_separators_and_nulls,
    to_host_path,
    to_wire_path,
)
from launchpad_tools.formats.base import FormatParser

logger = structlog.get_logger()

FIELD_SEPARATOR = ":"

_SIZE_PATTERN = re.compile(r"[0-9]+")

# Stripped from every line before parsing, so never valid inside a field
_LINE_NOISE = ("\r", "\n", "\0")


class ManifestParseError(ValueError):
    """Raised when a manifest line is not a valid entry."""


class ManifestEntry(BaseModel):
    """One tracked file."""

    model_config = ConfigDict(frozen=True)

    relative_path: str = Field(..., description="Path relative to the content root")
    content_hash: str = Field(..., description="Hex MD5 digest of the file content")
    size: int = Field(..., ge=0, description="Expected file size in bytes")

    @field_validator("relative_path")
    @classmethod
    def validate_relative_path(cls, v: str) -> str:
        """Normalize separators to the host convention."""
        if FIELD_SEPARATOR in v:
            raise ValueError("Relative path cannot contain ':'")
        if any(char in v for char in _LINE_NOISE):
            raise ValueError(f"Relative path cannot contain line separators or NUL: {v!r}")
        path = to_host_path(v).lstrip(os.sep)
        if not path:
            raise ValueError("Relative path cannot be empty")
        return path

    @field_validator("content_hash")
    @classmethod
    def validate_content_hash(cls, v: str) -> str:
        """Validate hash field."""
        noisy = any(char in v for char in _LINE_NOISE)
        if not v or noisy or FIELD_SEPARATOR in v or v != v.strip():
            raise ValueError(f"Invalid content hash: {v!r}")
        return v

    @property
    def wire_path(self) -> str:
        """Relative path with forward slashes."""
        return to_wire_path(self.relative_path)

    def __str__(self) -> str:
        return serialize_entry(self)


def parse_entry(line: str) -> ManifestEntry:
    """Parse a single manifest line.

    Args:
        line: Raw line, may include trailing line separators or NULs

    Returns:
        Parsed entry

    Raises:
        ManifestParseError: If the line is empty, does not have exactly
            three fields, or any field is invalid
    """
    if not line:
        raise ManifestParseError("Empty manifest line")

    clean = remove_line_separators_and_nulls(line)
    fields = clean.split(FIELD_SEPARATOR)
    if len(fields) != 3:
        raise ManifestParseError(
            f"Expected 3 fields separated by ':', got {len(fields)}: {clean!r}"
        )

    path, content_hash, raw_size = fields
    if not _SIZE_PATTERN.fullmatch(raw_size):
        raise ManifestParseError(f"Size is not a non-negative integer: {raw_size!r}")

    try:
        return ManifestEntry(
            relative_path=path,
            content_hash=content_hash,
            size=int(raw_size),
        )
    except ValueError as e:
        raise ManifestParseError(f"Invalid manifest entry {clean!r}: {e}") from e


def try_parse_entry(line: str) -> ManifestEntry | None:
    """Parse a manifest line, returning None instead of raising."""
    try:
        return parse_entry(line)
    except ManifestParseError:
        return None


def serialize_entry(entry: ManifestEntry) -> str:
    """Serialize an entry to its `path:hash:size` text form."""
    return f"{entry.wire_path}{FIELD_SEPARATOR}{entry.content_hash}{FIELD_SEPARATOR}{entry.size}"


class Manifest(BaseModel):
    """Ordered list of manifest entries."""

    entries: list[ManifestEntry] = Field(default_factory=list, description="Entries in file order")

    def __len__(self) -> int:
        return len(self.entries)

    def __bool__(self) -> bool:
        return bool(self.entries)

    def __iter__(self) -> Iterator[ManifestEntry]:  # type: ignore[override]
        return iter(self.entries)

    def contains(self, entry: ManifestEntry) -> bool:
        """Check for an exact (path, hash, size) match."""
        return entry in self.entries

    def find_by_path(self, relative_path: str) -> ManifestEntry | None:
        """Find the first entry with the given relative path."""
        path = to_host_path(relative_path).lstrip(os.sep)
        for entry in self.entries:
            if entry.relative_path == path:
                return entry
        return None

    def index_of(self, entry: ManifestEntry) -> int | None:
        """Position of an entry, or None if absent."""
        try:
            return self.entries.index(entry)
        except ValueError:
            return None

    @property
    def total_size(self) -> int:
        """Sum of all entry sizes."""
        return sum(entry.size for entry in self.entries)


class ManifestParser(FormatParser[Manifest]):
    """Parser for manifest files."""

    def parse(self, data: bytes | BinaryIO) -> Manifest:
        """Parse manifest data.

        Args:
            data: Raw manifest bytes or a binary stream

        Returns:
            Manifest with every line that parsed
        """
        if isinstance(data, bytes | bytearray):
            stream: BinaryIO = io.BytesIO(data)
        else:
            stream = data

        text = stream.read().decode("utf-8-sig", errors="replace")
        return self.parse_text(text)

    def parse_text(self, text: str) -> Manifest:
        """Parse manifest text, skipping invalid lines."""
        entries: list[ManifestEntry] = []
        skipped = 0

        for line_number, line in enumerate(text.splitlines(), start=1):
            if not line.strip():
                continue
            entry = try_parse_entry(line)
            if entry is None:
                skipped += 1
                logger.debug("manifest_line_skipped", line=line_number, content=line[:80])
                continue
            entries.append(entry)

        if skipped:
            logger.debug("manifest_parsed", entries=len(entries), skipped=skipped)

        return Manifest(entries=entries)

    def build(self, obj: Manifest) -> bytes:
        """Build manifest bytes, one entry per line."""
        return "".join(f"{serialize_entry(entry)}\n" for entry in obj.entries).encode("utf-8")
