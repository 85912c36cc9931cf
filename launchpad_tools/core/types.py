"""Core type definitions for launchpad_tools."""

from enum import StrEnum


class Module(StrEnum):
    """Installable units tracked by their own manifest."""
    LAUNCHER = "launcher"
    GAME = "game"


class ManifestGeneration(StrEnum):
    """Manifest generations kept on disk per module."""
    CURRENT = "current"
    PREVIOUS = "previous"


class SystemTarget(StrEnum):
    """Platform tags used in remote game paths."""
    WIN64 = "Win64"
    WIN32 = "Win32"
    LINUX = "Linux"
    MAC = "Mac"


class Operation(StrEnum):
    """Bulk operations driven by the patch engine."""
    INSTALL = "install"
    UPDATE = "update"
    VERIFY = "verify"


class Stage(StrEnum):
    """Phases of a bulk operation, used for progress and failure reporting."""
    MANIFEST = "manifest"
    DOWNLOAD = "download"
    UPDATE = "update"
    VERIFY = "verify"
