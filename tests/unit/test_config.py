"""Unit tests for configuration management.

Tests cover:
- Default configuration values
- TOML file loading
- Environment variable overrides
- Validation errors for invalid configurations
"""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from appforge.config import (
    AppforgeConfig,
    DockerConfig,
    LoggingConfig,
    PlatformConfig,
    RegistryConfig,
    SourceConfig,
    default_config_paths,
    load_config,
)


class TestLoggingConfig:
    """Test LoggingConfig defaults and validation."""

    def test_default_values(self) -> None:
        """Test that default logging configuration values are correct."""
        config = LoggingConfig()
        assert config.level == "WARNING"
        assert config.format == "console"
        assert config.file is None
        assert config.rotation_size_mb == 10
        assert config.retention_count == 3

    def test_level_validation(self) -> None:
        """Test that log level is validated."""
        config = LoggingConfig(level="debug")
        assert config.level == "DEBUG"

        with pytest.raises(ValidationError, match="Invalid log level"):
            LoggingConfig(level="LOUD")

    def test_format_validation(self) -> None:
        """Test that log format is validated."""
        config = LoggingConfig(format="JSON")
        assert config.format == "json"

        with pytest.raises(ValidationError, match="Invalid log format"):
            LoggingConfig(format="xml")


class TestLookupConfigs:
    """Test defaults of the lookup sections."""

    def test_docker_defaults(self) -> None:
        config = DockerConfig()
        assert config.enabled is True
        assert config.rootless is False

    def test_registry_defaults(self) -> None:
        config = RegistryConfig()
        assert config.default_registry == "docker.io"
        assert config.timeout_seconds == 30
        assert config.insecure is False

    def test_registry_timeout_validation(self) -> None:
        """Test that timeout is validated within range."""
        with pytest.raises(ValidationError):
            RegistryConfig(timeout_seconds=0)
        with pytest.raises(ValidationError):
            RegistryConfig(timeout_seconds=301)

    def test_platform_defaults(self) -> None:
        """Test that image stream lookups are disabled without a server."""
        config = PlatformConfig()
        assert config.server is None
        assert config.token is None
        assert config.namespace == "default"
        assert config.verify_tls is True

    def test_source_defaults(self) -> None:
        config = SourceConfig()
        assert config.clone_dir.name == "appforge"
        assert config.clone_depth == 1


class TestAppforgeConfig:
    """Test the root configuration."""

    def test_default_values(self) -> None:
        config = AppforgeConfig()
        assert config.output_format == "yaml"
        assert isinstance(config.logging, LoggingConfig)
        assert isinstance(config.platform, PlatformConfig)

    def test_output_format_validation(self) -> None:
        assert AppforgeConfig(output_format="JSON").output_format == "json"
        with pytest.raises(ValidationError, match="Invalid output format"):
            AppforgeConfig(output_format="xml")

    def test_unknown_keys_rejected(self) -> None:
        with pytest.raises(ValidationError):
            AppforgeConfig(database={"url": "sqlite://"})

    def test_nested_override(self) -> None:
        """Test that nested configuration can be overridden."""
        config = AppforgeConfig(
            platform=PlatformConfig(server="https://platform:8443", namespace="shop"),
            docker=DockerConfig(enabled=False),
        )
        assert config.platform.server == "https://platform:8443"
        assert config.platform.namespace == "shop"
        assert config.docker.enabled is False


class TestLoadConfig:
    """Test load_config function."""

    def test_load_defaults_when_no_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test loading defaults when no config file exists."""
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("HOME", str(tmp_path))
        config = load_config()
        assert config.output_format == "yaml"

    def test_explicit_path_not_found(self) -> None:
        """Test that an explicit missing path raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            load_config(Path("/nonexistent/appforge.toml"))

    def test_load_from_toml_file(self, tmp_path: Path) -> None:
        """Test loading configuration from a TOML file."""
        config_file = tmp_path / "test.toml"
        config_file.write_text(
            """
output_format = "json"

[platform]
server = "https://platform.example.com:8443"
namespace = "shop"

[registry]
timeout_seconds = 20

[source]
clone_depth = 0
"""
        )
        config = load_config(config_file)
        assert config.output_format == "json"
        assert config.platform.server == "https://platform.example.com:8443"
        assert config.platform.namespace == "shop"
        assert config.registry.timeout_seconds == 20
        assert config.source.clone_depth == 0

    def test_invalid_toml_raises_error(self, tmp_path: Path) -> None:
        """Test that invalid configuration values raise ValueError."""
        config_file = tmp_path / "invalid.toml"
        config_file.write_text(
            """
[registry]
timeout_seconds = 0
"""
        )
        with pytest.raises(ValueError):
            load_config(config_file)

    def test_search_current_directory(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that load_config searches the current directory."""
        (tmp_path / "appforge.toml").write_text('output_format = "json"\n')
        monkeypatch.chdir(tmp_path)
        config = load_config()
        assert config.output_format == "json"

    def test_environment_variable_override(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that environment variables override TOML values."""
        config_file = tmp_path / "test.toml"
        config_file.write_text(
            """
[platform]
namespace = "from-file"
"""
        )
        monkeypatch.setenv("APPFORGE_DOCKER__ENABLED", "false")
        config = load_config(config_file)
        assert config.platform.namespace == "from-file"
        assert config.docker.enabled is False

    def test_search_user_config_directory(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that the user config file is used when the current directory has none."""
        user_dir = tmp_path / "home" / ".config" / "appforge"
        user_dir.mkdir(parents=True)
        (user_dir / "config.toml").write_text('output_format = "json"\n')
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("HOME", str(tmp_path / "home"))

        assert default_config_paths()[1] == user_dir / "config.toml"
        assert load_config().output_format == "json"

    def test_malformed_toml_raises_error(self, tmp_path: Path) -> None:
        """Test that a file that is not TOML raises ValueError."""
        config_file = tmp_path / "broken.toml"
        config_file.write_text("[platform\n")
        with pytest.raises(ValueError):
            load_config(config_file)
