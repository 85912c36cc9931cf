"""Tests for launchpad_tools.core.types module."""

from launchpad_tools.core.types import (
    ManifestGeneration,
    Module,
    Operation,
    Stage,
    SystemTarget,
)


class TestModule:
    """Tests for Module enum."""

    def test_module_values(self) -> None:
        """Test Module enum values."""
        assert Module.LAUNCHER == "launcher"
        assert Module.GAME == "game"
        assert Module("game") is Module.GAME


class TestSystemTarget:
    """Tests for SystemTarget enum."""

    def test_platform_tags(self) -> None:
        """Test platform tags match remote directory names."""
        assert [t.value for t in SystemTarget] == ["Win64", "Win32", "Linux", "Mac"]


class TestOperationEnums:
    """Tests for operation and stage enums."""

    def test_values(self) -> None:
        """Test enum string values."""
        assert ManifestGeneration.PREVIOUS == "previous"
        assert Operation.VERIFY == "verify"
        assert Stage.DOWNLOAD == "download"
