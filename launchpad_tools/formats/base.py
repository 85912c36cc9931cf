"""Base classes for format parsers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import BinaryIO, Generic, TypeVar

import structlog
from pydantic import BaseModel

logger = structlog.get_logger()

T = TypeVar("T", bound=BaseModel)


class FormatParser(ABC, Generic[T]):
    """Base class for format parsers."""

    @abstractmethod
    def parse(self, data: bytes | BinaryIO) -> T:
        """Parse raw data.

        Args:
            data: Raw bytes or binary stream

        Returns:
            Parsed format object
        """
        ...

    def parse_file(self, path: str | Path) -> T:
        """Parse format from file.

        Args:
            path: File path

        Returns:
            Parsed format object
        """
        try:
            with open(path, "rb") as f:
                return self.parse(f)
        except OSError as e:
            logger.error("format_file_unreadable", path=str(path), error=str(e))
            raise ValueError(f"Cannot read file {path}: {e}") from e

    @abstractmethod
    def build(self, obj: T) -> bytes:
        """Build raw data from object.

        Args:
            obj: Format object

        Returns:
            Serialized data
        """
        ...

    def build_file(self, obj: T, path: str | Path) -> None:
        """Build format to file.

        Args:
            obj: Format object
            path: Output file path
        """
        try:
            data = self.build(obj)
            with open(path, "wb") as f:
                f.write(data)
        except OSError as e:
            logger.error("format_file_unwritable", path=str(path), error=str(e))
            raise ValueError(f"Cannot write file {path}: {e}") from e
