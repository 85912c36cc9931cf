"""Launchpad Tools - manifest-driven patching for launcher and game content.

This package keeps a local install directory in sync with a remote FTP
or HTTP patch server, using plain-text manifests of (path, hash, size)
entries.

Key modules:
- core: Patch engine, transfer backends, configuration and utilities
- formats: Manifest parser and builder
- commands: CLI command implementations
"""

__version__ = "0.1.0"
__author__ = "Launchpad Team"

# Re-export commonly used types
from launchpad_tools.core.types import (
    ManifestGeneration,
    Module,
    Operation,
    Stage,
    SystemTarget,
)

__all__ = [
    "__version__",
    "__author__",
    "ManifestGeneration",
    "Module",
    "Operation",
    "Stage",
    "SystemTarget",
]
