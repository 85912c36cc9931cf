"""Core functionality for launchpad_tools.

This module provides shared functionality used across the entire package:
- Configuration management
- Type definitions
- Utility functions
- Transfer backends (FTP and HTTP)
- The patch engine
"""

from launchpad_tools.core.types import (
    ManifestGeneration,
    Module,
    Operation,
    Stage,
    SystemTarget,
)
from launchpad_tools.core.utils import (
    chunked_read,
    compute_stream_md5,
    format_size,
    remove_line_separators_and_nulls,
    to_host_path,
    to_wire_path,
)

__all__ = [
    # Types
    "ManifestGeneration",
    "Module",
    "Operation",
    "Stage",
    "SystemTarget",
    # Utils
    "chunked_read",
    "compute_stream_md5",
    "format_size",
    "remove_line_separators_and_nulls",
    "to_host_path",
    "to_wire_path",
]
