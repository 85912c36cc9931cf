"""Format parsers and builders.

- Manifest: plain-text `path:hash:size` file lists
"""

from launchpad_tools.formats.base import FormatParser
from launchpad_tools.formats.manifest import (
    Manifest,
    ManifestEntry,
    ManifestParseError,
    ManifestParser,
    parse_entry,
    serialize_entry,
    try_parse_entry,
)

__all__ = [
    "FormatParser",
    "Manifest",
    "ManifestEntry",
    "ManifestParseError",
    "ManifestParser",
    "parse_entry",
    "serialize_entry",
    "try_parse_entry",
]
