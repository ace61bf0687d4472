"""Integration tests for the CLI.

This module tests the Typer-based new-app command. Images are resolved
through the static builder image catalog instead of a registry.
"""

from __future__ import annotations

import json
from pathlib import Path

import git
import pytest
import yaml
from typer.testing import CliRunner

from appforge.config import AppforgeConfig
from appforge.generate.resolve import SearchResolver
from appforge.generate.search import StaticSearcher
from appforge.main import app
from appforge.newapp import AppConfig

pytestmark = pytest.mark.integration


@pytest.fixture
def cli_runner() -> CliRunner:
    """Create a Typer CLI runner.

    Returns:
        CliRunner instance for invoking CLI commands
    """
    return CliRunner()


@pytest.fixture(autouse=True)
def offline_lookups(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Resolve images from the static catalog and ignore user config files."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path))

    def from_config(cls, config: AppforgeConfig) -> AppConfig:
        return cls(config, docker_registry_resolver=SearchResolver(StaticSearcher()))

    monkeypatch.setattr(AppConfig, "from_config", classmethod(from_config))


class TestNewApp:
    """Test the new-app command."""

    def test_image_deployment(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(app, ["new-app", "redhat/mysql:5.6"])

        assert result.exit_code == 0, result.output
        data = yaml.safe_load(result.stdout)
        assert data["kind"] == "List"
        assert [o["kind"] for o in data["items"]] == ["ImageStream", "DeploymentConfig", "Service"]

    def test_json_output(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(app, ["new-app", "redhat/mysql:5.6", "-o", "json"])

        assert result.exit_code == 0, result.output
        assert len(json.loads(result.stdout)["items"]) == 3

    def test_invalid_output_format(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(app, ["new-app", "redhat/mysql:5.6", "--output", "xml"])
        assert result.exit_code == 1
        assert "output format" in result.output

    def test_environment_option(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(
            app, ["new-app", "redhat/mysql:5.6", "--env", "MYSQL_USER=admin", "-e", "MYSQL_DATABASE=shop"]
        )

        assert result.exit_code == 0, result.output
        deployment = yaml.safe_load(result.stdout)["items"][1]
        env = deployment["spec"]["template"]["spec"]["containers"][0]["env"]
        assert env == [
            {"name": "MYSQL_USER", "value": "admin"},
            {"name": "MYSQL_DATABASE", "value": "shop"},
        ]

    def test_ambiguous_reference(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(app, ["new-app", "mysql"])

        assert result.exit_code == 1
        assert "multiple images or image streams matched 'mysql'" in result.output
        assert "redhat/mysql:5.6" in result.output

    def test_every_error_is_listed(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(app, ["new-app", "mysql", "cobol"])

        assert result.exit_code == 1
        assert "2 errors occurred" in result.output
        assert "no image or image stream matched 'cobol'" in result.output

    def test_builder_needs_code(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(app, ["new-app", "php"])

        assert result.exit_code == 1
        assert "you must specify a repository via --code" in result.output

    def test_code_option(self, cli_runner: CliRunner, tmp_path: Path) -> None:
        source = tmp_path / "app"
        git.Repo.init(source).create_remote("origin", "https://github.com/org/app.git")

        result = cli_runner.invoke(app, ["new-app", "php", "--code", str(source)])

        assert result.exit_code == 0, result.output
        kinds = [o["kind"] for o in yaml.safe_load(result.stdout)["items"]]
        assert "BuildConfig" in kinds

    def test_unrecognized_arguments(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(app, ["new-app", "Not An Image"])

        assert result.exit_code == 1
        assert "did not recognize the following arguments: 'Not An Image'" in result.output

    def test_no_input_prints_help(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(app, ["new-app"])

        assert result.exit_code == 0
        assert "Usage" in result.output
        assert "--docker-image" in result.output


class TestGlobalOptions:
    """Test options handled by the application callback."""

    def test_missing_config_file(self, cli_runner: CliRunner, tmp_path: Path) -> None:
        result = cli_runner.invoke(app, ["--config", str(tmp_path / "missing.toml"), "new-app", "redhat/mysql:5.6"])
        assert result.exit_code != 0

    def test_config_file_sets_output_format(self, cli_runner: CliRunner, tmp_path: Path) -> None:
        config_file = tmp_path / "custom.toml"
        config_file.write_text('output_format = "json"\n\n[docker]\nenabled = false\n')

        result = cli_runner.invoke(app, ["-c", str(config_file), "new-app", "redhat/mysql:5.6"])

        assert result.exit_code == 0, result.output
        assert json.loads(result.stdout)["kind"] == "List"

    def test_invalid_config_file(self, cli_runner: CliRunner, tmp_path: Path) -> None:
        config_file = tmp_path / "bad.toml"
        config_file.write_text('output_format = "xml"\n')

        result = cli_runner.invoke(app, ["-c", str(config_file), "new-app", "redhat/mysql:5.6"])

        assert result.exit_code == 1
        assert "Error loading configuration" in result.output
