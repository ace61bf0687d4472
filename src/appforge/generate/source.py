"""Source code locations.

A SourceRepository is a place code can be built from: a local directory or a
remote git repository. Remote repositories are cloned lazily with GitPython
the first time their contents are needed.

Repositories live in a SourceRegistry. Component references refer to the
repository they build from by id, and a repository records the ids of the
references that use it, so neither side owns the other.

Example usage:
    >>> registry = SourceRegistry(SourceConfig())
    >>> repo = registry.add("https://github.com/openshift/ruby-hello-world.git")
    >>> path = repo.local_path()
"""

from __future__ import annotations

import hashlib
import re
from collections.abc import Iterator
from pathlib import Path
from urllib.parse import urlsplit, urlunsplit

import git
from git import GitCommandError, InvalidGitRepositoryError, NoSuchPathError

from appforge.config import SourceConfig
from appforge.errors import DetectionError
from appforge.logging import get_logger

logger = get_logger(__name__)

_REMOTE_SCHEMES = frozenset({"http", "https", "git", "ssh", "file"})
_SCP_PATTERN = re.compile(r"^[A-Za-z0-9._-]+@[A-Za-z0-9.-]+:[^/].*$")


def is_remote_repository(value: str) -> bool:
    """Return True if the value names a remote git repository."""
    if _SCP_PATTERN.match(value):
        return True
    parts = urlsplit(value)
    return parts.scheme in _REMOTE_SCHEMES and bool(parts.netloc or parts.scheme == "file")


def is_possible_source_repository(value: str) -> bool:
    """Return True if the value looks like a source code location."""
    if not value:
        return False
    if is_remote_repository(value):
        return True
    return Path(value).expanduser().is_dir()


class SourceRepository:
    """A code location that can be built.

    Attributes:
        id: Identifier of this repository within its SourceRegistry
        location: The location exactly as the user gave it
        used_by: Ids of the component references that build from this repository
    """

    def __init__(self, id: int, location: str, config: SourceConfig) -> None:
        self.id = id
        self.location = location
        self.used_by: set[int] = set()
        self._config = config
        self._docker_build = False
        self._local_path: Path | None = None

        url, _, ref = location.partition("#")
        self._url = url
        self._ref = ref or None

    def __str__(self) -> str:
        return self.location

    def __repr__(self) -> str:
        return f"SourceRepository({self.id}, {self.location!r})"

    @property
    def is_remote(self) -> bool:
        return is_remote_repository(self._url)

    @property
    def ref(self) -> str | None:
        """Branch or tag selected with a ``#ref`` fragment."""
        return self._ref

    @property
    def name(self) -> str:
        """Suggested object name derived from the location."""
        if self.is_remote:
            path = urlsplit(self._url).path if "://" in self._url else self._url.split(":", 1)[1]
            base = path.rstrip("/").rsplit("/", 1)[-1]
        else:
            base = Path(self._url).expanduser().resolve().name
        return base.removesuffix(".git")

    def in_use(self) -> bool:
        """Whether at least one component reference builds from this repository."""
        return len(self.used_by) > 0

    def mark_used_by(self, reference_id: int) -> None:
        self.used_by.add(reference_id)

    def use_docker_build(self) -> None:
        """Build this repository with its Dockerfile instead of a builder image."""
        self._docker_build = True

    def is_docker_build(self) -> bool:
        return self._docker_build

    def local_path(self) -> Path:
        """Return a local directory holding the repository contents.

        Remote repositories are cloned on first use and the clone is reused.

        Raises:
            DetectionError: If the directory does not exist or cloning fails
        """
        if self._local_path is not None:
            return self._local_path

        if not self.is_remote:
            path = Path(self._url).expanduser().resolve()
            if not path.is_dir():
                raise DetectionError(
                    f"source location {self.location!r} is not a directory",
                    value=self.location,
                )
            self._local_path = path
            return path

        digest = hashlib.sha1(self.location.encode("utf-8")).hexdigest()[:12]
        target = self._config.clone_dir / f"{self.name}-{digest}"
        if (target / ".git").is_dir():
            logger.debug("source_clone_reused", location=self.location, path=str(target))
            self._local_path = target
            return target

        kwargs: dict[str, object] = {}
        if self._config.clone_depth > 0:
            kwargs["depth"] = self._config.clone_depth
        if self._ref:
            kwargs["branch"] = self._ref

        logger.info("source_clone_started", location=self.location, path=str(target))
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            git.Repo.clone_from(self._url, target, **kwargs)
        except (GitCommandError, OSError) as e:
            logger.error(
                "source_clone_failed",
                location=self.location,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise DetectionError(
                f"unable to clone {self.location!r}: {e}", value=self.location
            ) from e

        self._local_path = target
        return target

    def remote_url(self) -> str:
        """URL a platform build can fetch this repository from.

        Local directories report their ``origin`` remote. A directory without
        one falls back to a ``file://`` URL.
        """
        if self.is_remote:
            return self._url

        path = Path(self._url).expanduser().resolve()
        try:
            repo = git.Repo(path, search_parent_directories=True)
            if "origin" in [remote.name for remote in repo.remotes]:
                return self._strip_credentials(repo.remotes.origin.url)
        except (InvalidGitRepositoryError, NoSuchPathError):
            pass

        logger.warning("source_without_remote", location=self.location)
        return path.as_uri()

    @staticmethod
    def _strip_credentials(url: str) -> str:
        parts = urlsplit(url)
        if parts.username is None and parts.password is None:
            return url
        host = parts.hostname or ""
        if parts.port:
            host = f"{host}:{parts.port}"
        return urlunsplit((parts.scheme, host, parts.path, parts.query, parts.fragment))


class SourceRegistry:
    """Ordered set of source repositories, addressable by id."""

    def __init__(self, config: SourceConfig | None = None) -> None:
        self._config = config or SourceConfig()
        self._repositories: list[SourceRepository] = []
        self._by_location: dict[str, SourceRepository] = {}

    def add(self, location: str) -> SourceRepository:
        """Register a location, returning the existing repository for duplicates."""
        existing = self._by_location.get(location)
        if existing is not None:
            return existing
        repo = SourceRepository(len(self._repositories), location, self._config)
        self._repositories.append(repo)
        self._by_location[location] = repo
        return repo

    def get(self, repository_id: int) -> SourceRepository:
        return self._repositories[repository_id]

    def __len__(self) -> int:
        return len(self._repositories)

    def __iter__(self) -> Iterator[SourceRepository]:
        return iter(self._repositories)

    def __getitem__(self, index: int) -> SourceRepository:
        return self._repositories[index]
