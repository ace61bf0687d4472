"""Configuration management for Appforge.

This module defines the configuration schema using Pydantic settings,
supporting TOML files, environment variables, and programmatic overrides.

Configuration loading priority (highest to lowest):
1. Programmatic overrides (passed to AppforgeConfig constructor)
2. Environment variables (APPFORGE_* prefix)
3. TOML configuration file
4. Default values defined in this module

Example TOML configuration:
    [platform]
    server = "https://platform.example.com:8443"
    namespace = "myproject"

    [registry]
    timeout_seconds = 20

Example environment variable override:
    APPFORGE_PLATFORM__TOKEN="sha256~..."
    APPFORGE_DOCKER__ENABLED=false
"""

from __future__ import annotations

import tempfile
from pathlib import Path

import tomli
from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LoggingConfig(BaseSettings):
    """Logging configuration.

    Attributes:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format: Log format (json or console)
        file: Optional log file path (None for stderr only)
        rotation_size_mb: Log file rotation size in megabytes
        retention_count: Number of rotated log files to keep
    """

    model_config = SettingsConfigDict(
        env_prefix="APPFORGE_LOGGING__",
        extra="forbid",
    )

    level: str = Field(default="WARNING")
    format: str = Field(default="console")
    file: Path | None = Field(default=None)
    rotation_size_mb: int = Field(default=10, ge=1, le=1000)
    retention_count: int = Field(default=3, ge=1, le=100)

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate log level is recognized."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v_upper

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        """Validate log format is recognized."""
        valid_formats = {"json", "console"}
        v_lower = v.lower()
        if v_lower not in valid_formats:
            raise ValueError(f"Invalid log format: {v}. Must be one of {valid_formats}")
        return v_lower


class DockerConfig(BaseSettings):
    """Local Docker daemon configuration.

    Attributes:
        enabled: Look up images in the local Docker daemon
        rootless: Prefer the rootless Docker socket
    """

    model_config = SettingsConfigDict(
        env_prefix="APPFORGE_DOCKER__",
        extra="forbid",
    )

    enabled: bool = Field(default=True)
    rootless: bool = Field(default=False)


class RegistryConfig(BaseSettings):
    """Docker registry lookup configuration.

    Attributes:
        default_registry: Registry used when a reference names none
        timeout_seconds: HTTP timeout for registry requests
        insecure: Talk plain HTTP to registries
    """

    model_config = SettingsConfigDict(
        env_prefix="APPFORGE_REGISTRY__",
        extra="forbid",
    )

    default_registry: str = Field(default="docker.io")
    timeout_seconds: int = Field(default=30, ge=1, le=300)
    insecure: bool = Field(default=False)


class PlatformConfig(BaseSettings):
    """Platform API configuration used for image stream lookups.

    Attributes:
        server: Base URL of the platform API (None disables image streams)
        token: Bearer token for the platform API
        namespace: Namespace searched first for image streams
        verify_tls: Verify the server certificate
        timeout_seconds: HTTP timeout for platform requests
    """

    model_config = SettingsConfigDict(
        env_prefix="APPFORGE_PLATFORM__",
        extra="forbid",
    )

    server: str | None = Field(default=None)
    token: str | None = Field(default=None)
    namespace: str = Field(default="default")
    verify_tls: bool = Field(default=True)
    timeout_seconds: int = Field(default=30, ge=1, le=300)


class SourceConfig(BaseSettings):
    """Source repository handling configuration.

    Attributes:
        clone_dir: Directory remote repositories are cloned into
        clone_depth: History depth for clones (0 for full history)
    """

    model_config = SettingsConfigDict(
        env_prefix="APPFORGE_SOURCE__",
        extra="forbid",
    )

    clone_dir: Path = Field(default=Path(tempfile.gettempdir()) / "appforge")
    clone_depth: int = Field(default=1, ge=0, le=1000)


class AppforgeConfig(BaseSettings):
    """Root configuration for Appforge.

    Aggregates all subsystem configurations. Configuration can be loaded from:
    1. TOML files (using load_config function)
    2. Environment variables (APPFORGE_* prefix)
    3. Direct instantiation with keyword arguments

    Environment variable format for nested config:
        APPFORGE_<SECTION>__<KEY>=value
    """

    model_config = SettingsConfigDict(
        env_prefix="APPFORGE_",
        env_nested_delimiter="__",
        extra="forbid",
    )

    output_format: str = Field(default="yaml")
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    docker: DockerConfig = Field(default_factory=DockerConfig)
    registry: RegistryConfig = Field(default_factory=RegistryConfig)
    platform: PlatformConfig = Field(default_factory=PlatformConfig)
    source: SourceConfig = Field(default_factory=SourceConfig)

    @field_validator("output_format")
    @classmethod
    def validate_output_format(cls, v: str) -> str:
        """Validate output format is recognized."""
        valid_formats = {"yaml", "json"}
        v_lower = v.lower()
        if v_lower not in valid_formats:
            raise ValueError(f"Invalid output format: {v}. Must be one of {valid_formats}")
        return v_lower


def default_config_paths() -> list[Path]:
    """Locations searched for a configuration file, in order."""
    return [
        Path.cwd() / "appforge.toml",
        Path.home() / ".config" / "appforge" / "config.toml",
    ]


def load_config(config_path: Path | None = None) -> AppforgeConfig:
    """Load configuration from a TOML file, overlaid with environment variables.

    Without config_path the first existing file of default_config_paths()
    is used; with none found, only environment variables and defaults apply.

    Raises:
        FileNotFoundError: If config_path is given but doesn't exist
        ValueError: If the file is not valid TOML or holds invalid settings
    """
    if config_path is not None and not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")
    if config_path is None:
        config_path = next((p for p in default_config_paths() if p.exists()), None)

    if config_path is None:
        return AppforgeConfig()

    with open(config_path, "rb") as f:
        toml_data = tomli.load(f)
    try:
        return AppforgeConfig(**toml_data)
    except ValidationError as e:
        raise ValueError(f"Invalid configuration in {config_path}: {e}") from e
