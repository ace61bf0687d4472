"""Source repository inspection.

Detectors look at a checked-out repository and report what it contains: a
Dockerfile, and the languages (with versions where marker files state them)
that a builder image would need to support. The resulting terms drive the
builder image search.
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from appforge.errors import DetectionError
from appforge.logging import get_logger

logger = get_logger(__name__)

_FROM_PATTERN = re.compile(r"^\s*FROM\s+(?:--platform=\S+\s+)?(\S+)", re.IGNORECASE | re.MULTILINE)
_MAJOR_VERSION = re.compile(r"(\d+(?:\.\d+)?)")


@dataclass(frozen=True)
class SourceLanguageType:
    """A language found in a repository."""

    platform: str
    version: str = ""


@dataclass(frozen=True)
class DockerfileInfo:
    """A Dockerfile found in a repository.

    Attributes:
        path: Location of the Dockerfile
        base_image: Image named by the last FROM instruction, if any
    """

    path: Path
    base_image: str | None = None


@dataclass
class SourceRepositoryInfo:
    """What was detected in a repository."""

    path: Path
    types: list[SourceLanguageType] = field(default_factory=list)
    dockerfile: DockerfileInfo | None = None

    def terms(self) -> list[str]:
        """Search terms, most specific first for each detected language."""
        terms: list[str] = []
        for t in self.types:
            if t.version:
                terms.append(f"{t.platform}-{t.version}")
            terms.append(t.platform)
        return terms


class Detector(Protocol):
    """Inspects a local directory."""

    def detect(self, path: Path) -> SourceRepositoryInfo: ...


LanguageDetector = Callable[[Path], SourceLanguageType | None]


def _read_version(path: Path) -> str:
    try:
        match = _MAJOR_VERSION.search(path.read_text(encoding="utf-8"))
    except OSError:
        return ""
    return match.group(1) if match else ""


def detect_ruby(path: Path) -> SourceLanguageType | None:
    if not (path / "Gemfile").is_file():
        return None
    return SourceLanguageType("ruby", _read_version(path / ".ruby-version"))


def detect_nodejs(path: Path) -> SourceLanguageType | None:
    package = path / "package.json"
    if not package.is_file():
        return None
    version = ""
    try:
        engines = json.loads(package.read_text(encoding="utf-8")).get("engines") or {}
        match = _MAJOR_VERSION.search(str(engines.get("node", "")))
        version = match.group(1) if match else ""
    except (OSError, ValueError, AttributeError):
        logger.debug("package_json_unreadable", path=str(package))
    return SourceLanguageType("nodejs", version)


def detect_php(path: Path) -> SourceLanguageType | None:
    if (path / "composer.json").is_file() or (path / "index.php").is_file():
        return SourceLanguageType("php")
    return None


def detect_python(path: Path) -> SourceLanguageType | None:
    markers = ("requirements.txt", "setup.py", "pyproject.toml", "Pipfile")
    if not any((path / m).is_file() for m in markers):
        return None
    version = _read_version(path / "runtime.txt") or _read_version(path / ".python-version")
    return SourceLanguageType("python", version)


def detect_java(path: Path) -> SourceLanguageType | None:
    markers = ("pom.xml", "build.gradle", "build.gradle.kts")
    if any((path / m).is_file() for m in markers):
        return SourceLanguageType("java")
    return None


def detect_perl(path: Path) -> SourceLanguageType | None:
    if (path / "cpanfile").is_file() or (path / "index.pl").is_file():
        return SourceLanguageType("perl")
    return None


DEFAULT_DETECTORS: tuple[LanguageDetector, ...] = (
    detect_ruby,
    detect_nodejs,
    detect_php,
    detect_python,
    detect_java,
    detect_perl,
)


class DockerfileTester:
    """Finds a Dockerfile at the root of a repository."""

    def __init__(self, filename: str = "Dockerfile") -> None:
        self.filename = filename

    def has(self, path: Path) -> DockerfileInfo | None:
        dockerfile = path / self.filename
        if not dockerfile.is_file():
            return None
        try:
            content = dockerfile.read_text(encoding="utf-8")
        except OSError as e:
            raise DetectionError(f"unable to read {dockerfile}: {e}", value=str(dockerfile)) from e
        images = _FROM_PATTERN.findall(content)
        return DockerfileInfo(path=dockerfile, base_image=images[-1] if images else None)


class SourceRepositoryEnumerator:
    """Default Detector: a Dockerfile check plus a list of language detectors."""

    def __init__(
        self,
        detectors: Sequence[LanguageDetector] = DEFAULT_DETECTORS,
        tester: DockerfileTester | None = None,
    ) -> None:
        self.detectors = list(detectors)
        self.tester = tester or DockerfileTester()

    def detect(self, path: Path) -> SourceRepositoryInfo:
        """Inspect a directory.

        Raises:
            DetectionError: If the path is not a readable directory
        """
        if not path.is_dir():
            raise DetectionError(f"{path} is not a directory", value=str(path))

        info = SourceRepositoryInfo(path=path, dockerfile=self.tester.has(path))
        for detector in self.detectors:
            found = detector(path)
            if found is not None:
                info.types.append(found)

        logger.debug(
            "source_detected",
            path=str(path),
            dockerfile=info.dockerfile is not None,
            types=[t.platform for t in info.types],
        )
        return info
