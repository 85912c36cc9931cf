"""Configuration management for launchpad-tools."""

from __future__ import annotations

import json
import tempfile
from collections.abc import Mapping
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import structlog
from pydantic import BaseModel, Field, field_validator

from launchpad_tools import __version__
from launchpad_tools.core.types import SystemTarget

logger = structlog.get_logger()

SUPPORTED_SCHEMES = {"ftp", "http", "https"}


class RemoteConfig(BaseModel):
    """Remote patch server settings."""

    address: str = Field(
        default="ftp://localhost",
        description="Base address of the patch server"
    )
    username: str = Field(default="anonymous", description="Remote username")
    password: str = Field(default="anonymous", description="Remote password")
    file_retries: int = Field(default=2, description="Redownload attempts per broken file")
    buffer_size: int = Field(default=8192, description="Transfer chunk size in bytes")
    timeout: float = Field(default=30.0, description="Transfer timeout in seconds")
    probe_timeout: float = Field(default=4.0, description="Connectivity probe timeout in seconds")

    @property
    def scheme(self) -> str:
        """URL scheme of the remote address."""
        return urlparse(self.address).scheme.lower()

    @field_validator("address")
    @classmethod
    def validate_address(cls, v: str) -> str:
        """Validate remote address."""
        parsed = urlparse(v)
        if parsed.scheme.lower() not in SUPPORTED_SCHEMES or not parsed.netloc:
            raise ValueError(
                f"Invalid remote address: {v}. "
                f"Expected an ftp://, http:// or https:// URL"
            )
        return v.rstrip("/")

    @field_validator("file_retries")
    @classmethod
    def validate_file_retries(cls, v: int) -> int:
        """Validate retry count."""
        if v < 0:
            raise ValueError("File retries must be non-negative")
        return v

    @field_validator("buffer_size")
    @classmethod
    def validate_buffer_size(cls, v: int) -> int:
        """Validate buffer size."""
        if v <= 0:
            raise ValueError("Buffer size must be positive")
        return v

    @field_validator("timeout", "probe_timeout")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        """Validate timeout value."""
        if v <= 0:
            raise ValueError("Timeout must be positive")
        return v


class LauncherConfig(BaseModel):
    """Launcher and game settings."""

    system_target: SystemTarget = Field(
        default=SystemTarget.LINUX,
        description="Platform whose game build is installed"
    )
    game_name: str = Field(default="LaunchpadExample", description="Game name")
    executable_path: str = Field(
        default="LaunchpadExample/Binaries/Linux/LaunchpadExample",
        description="Game executable path relative to the game directory"
    )
    version: str = Field(default=__version__, description="Local launcher version")
    use_official_updates: bool = Field(
        default=True,
        description="Read the launcher version with an anonymous login"
    )
    executable_extensions: list[str] = Field(
        default=[".sh", ".x86", ".x86_64", ".run", ".appimage"],
        description="File suffixes marked executable after download on POSIX hosts"
    )

    @property
    def executable_name(self) -> str:
        """File name of the game binary."""
        return Path(self.executable_path.replace("\\", "/")).name

    @field_validator("executable_extensions")
    @classmethod
    def validate_executable_extensions(cls, v: list[str]) -> list[str]:
        """Normalize suffixes to lowercase with a leading dot."""
        return [ext.lower() if ext.startswith(".") else f".{ext.lower()}" for ext in v]


# Flat keys accepted from external key/value providers (INI sections)
FLAT_KEY_MAP: dict[str, tuple[str, str | None]] = {
    "Remote.Address": ("remote", "address"),
    "Remote.Username": ("remote", "username"),
    "Remote.Password": ("remote", "password"),
    "Remote.FileDownloadRetries": ("remote", "file_retries"),
    "Remote.FileDownloadBufferSize": ("remote", "buffer_size"),
    "Remote.Timeout": ("remote", "timeout"),
    "Launcher.SystemTarget": ("launcher", "system_target"),
    "Launcher.UseOfficialUpdates": ("launcher", "use_official_updates"),
    "Launcher.Version": ("launcher", "version"),
    "Game.Name": ("launcher", "game_name"),
    "Game.ExecutablePath": ("launcher", "executable_path"),
    "Local.Directory": ("local_dir", None),
    "Local.GameDirectory": ("game_dir", None),
}


class AppConfig(BaseModel):
    """Application configuration."""

    local_dir: Path = Field(
        default=Path.home() / ".local" / "share" / "launchpad",
        description="Launcher directory holding manifests and tagfiles"
    )
    game_dir: Path | None = Field(
        default=None,
        description="Game content root, defaults to <local_dir>/Game/<platform>"
    )
    launcher_download_dir: Path | None = Field(
        default=None,
        description="Staging directory for launcher files"
    )

    remote: RemoteConfig = Field(default_factory=RemoteConfig)
    launcher: LauncherConfig = Field(default_factory=LauncherConfig)

    # Output settings
    output_format: str = Field(
        default="rich",
        description="Output format (rich, json, plain)"
    )
    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    @property
    def resolved_game_dir(self) -> Path:
        """Game content root."""
        if self.game_dir is not None:
            return self.game_dir
        return self.local_dir / "Game" / self.launcher.system_target.value

    @property
    def resolved_launcher_download_dir(self) -> Path:
        """Launcher staging directory."""
        if self.launcher_download_dir is not None:
            return self.launcher_download_dir
        return Path(tempfile.gettempdir()) / "launchpad" / "launcher"

    @classmethod
    def load(cls, config_file: Path | None = None) -> AppConfig:
        """Load configuration from file.

        Args:
            config_file: Path to config file, uses default if None

        Returns:
            Application configuration
        """
        if config_file is None:
            config_file = Path.home() / ".config" / "launchpad-tools" / "config.json"

        if config_file.exists():
            with open(config_file) as f:
                data = json.load(f)
                return cls(**data)

        # Return defaults
        return cls()

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> AppConfig:
        """Build configuration from flat `Section.Key` pairs.

        Unknown keys are ignored so that a full launcher INI file can be
        passed through unchanged.

        Args:
            values: Flat key/value pairs, e.g. {"Remote.Address": "ftp://host"}

        Returns:
            Application configuration
        """
        data: dict[str, Any] = {}
        for key, value in values.items():
            target = FLAT_KEY_MAP.get(key)
            if target is None:
                logger.debug("config_key_ignored", key=key)
                continue
            section, field = target
            if field is None:
                data[section] = value
            else:
                data.setdefault(section, {})[field] = value
        return cls(**data)

    def save(self, config_file: Path) -> None:
        """Save configuration to file.

        Args:
            config_file: Path to config file
        """
        config_file.parent.mkdir(parents=True, exist_ok=True)

        with open(config_file, "w") as f:
            json.dump(self.model_dump(mode="json"), f, indent=2, default=str)

        logger.info("config_saved", path=str(config_file))

    @field_validator("output_format")
    @classmethod
    def validate_output_format(cls, v: str) -> str:
        """Validate output format."""
        valid_formats = {"rich", "json", "plain"}
        if v not in valid_formats:
            raise ValueError(f"Invalid output format: {v}. Valid formats: {valid_formats}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Valid levels: {valid_levels}")
        return v
