"""Version strings published next to module content.

Versions have two to four dot-separated numeric components
(major.minor[.build[.revision]]). Missing components compare as zero.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from launchpad_tools.core.utils import remove_line_separators_and_nulls

_VERSION_PATTERN = re.compile(r"[0-9]+(\.[0-9]+){1,3}")


class VersionError(ValueError):
    """Raised when a version string cannot be parsed."""


@dataclass(frozen=True, order=True)
class Version:
    """Comparable module version."""

    major: int
    minor: int
    build: int = 0
    revision: int = 0

    @classmethod
    def parse(cls, text: str) -> Version:
        """Parse a version string.

        Args:
            text: Raw version text, surrounding whitespace and line
                separators are ignored

        Returns:
            Parsed version

        Raises:
            VersionError: If the text is not a valid version
        """
        clean = remove_line_separators_and_nulls(text).strip()
        if not _VERSION_PATTERN.fullmatch(clean):
            raise VersionError(f"Invalid version string: {clean!r}")

        parts = [int(part) for part in clean.split(".")]
        parts.extend([0] * (4 - len(parts)))
        return cls(*parts)

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.build}.{self.revision}"
