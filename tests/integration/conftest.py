"""Pytest fixtures for integration tests.

New-app runs here resolve images against the static builder image catalog
instead of a registry, and use source repositories created in temporary
directories, so no network access or Docker daemon is needed.
"""

from __future__ import annotations

from pathlib import Path

import git
import pytest

from appforge.config import AppforgeConfig, DockerConfig, SourceConfig
from appforge.generate.resolve import SearchResolver
from appforge.generate.search import StaticSearcher
from appforge.newapp import AppConfig

ORIGIN_URL = "https://github.com/openshift/ruby-hello-world.git"


@pytest.fixture
def appforge_config(tmp_path: Path) -> AppforgeConfig:
    """Create a configuration without local Docker lookups.

    Args:
        tmp_path: pytest temporary directory fixture

    Returns:
        AppforgeConfig cloning into the temporary directory
    """
    return AppforgeConfig(
        docker=DockerConfig(enabled=False),
        source=SourceConfig(clone_dir=tmp_path / "clones"),
    )


@pytest.fixture
def app_config(appforge_config: AppforgeConfig) -> AppConfig:
    """Create an AppConfig resolving images through the static catalog."""
    return AppConfig(
        appforge_config,
        docker_registry_resolver=SearchResolver(StaticSearcher()),
    )


def _init_repo(path: Path, files: dict[str, str], origin: str | None = ORIGIN_URL) -> git.Repo:
    path.mkdir(parents=True)
    repo = git.Repo.init(path)
    repo.config_writer().set_value("user", "name", "Test User").release()
    repo.config_writer().set_value("user", "email", "test@example.com").release()
    for name, content in files.items():
        (path / name).write_text(content)
    repo.index.add(list(files))
    repo.index.commit("Initial commit")
    if origin is not None:
        repo.create_remote("origin", origin)
    return repo


@pytest.fixture
def ruby_source(tmp_path: Path) -> Path:
    """Create a git repository holding a Ruby application.

    Returns:
        Path of the working tree
    """
    path = tmp_path / "ruby-hello-world"
    _init_repo(path, {"Gemfile": "source 'https://rubygems.org'\n", "config.ru": "run App\n"})
    return path


@pytest.fixture
def dockerfile_source(tmp_path: Path) -> Path:
    """Create a git repository holding a Dockerfile and Ruby sources."""
    path = tmp_path / "docker-app"
    _init_repo(
        path,
        {"Dockerfile": "FROM centos:7\nCOPY . /app\n", "Gemfile": ""},
        origin="https://github.com/example/docker-app.git",
    )
    return path


@pytest.fixture
def plain_source(tmp_path: Path) -> Path:
    """Create a directory that is not a git repository and has no known language."""
    path = tmp_path / "plain"
    path.mkdir()
    (path / "README").write_text("nothing to see\n")
    return path
