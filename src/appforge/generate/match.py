"""Resolution results.

A ComponentMatch is what a resolver hands back for a name: the concrete image
it found, how to describe it and whether it is able to build source code.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# Markers that identify a source-to-image builder
BUILDER_ENV_VARIABLE = "STI_SCRIPTS_URL"
BUILDER_LABEL = "io.openshift.s2i.scripts-url"


class ImageMetadata(BaseModel):
    """The parts of an image configuration pipelines care about.

    Attributes:
        exposed_ports: Ports in Docker notation, e.g. ``3306/tcp``
        env: Environment in ``KEY=VALUE`` form
        labels: Image labels
    """

    model_config = ConfigDict(frozen=True)

    exposed_ports: tuple[str, ...] = ()
    env: tuple[str, ...] = ()
    labels: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_docker_config(cls, config: dict[str, Any] | None) -> ImageMetadata:
        """Build metadata from a Docker image ``Config`` block."""
        config = config or {}
        return cls(
            exposed_ports=tuple(sorted((config.get("ExposedPorts") or {}).keys())),
            env=tuple(config.get("Env") or ()),
            labels=dict(config.get("Labels") or {}),
        )

    @property
    def is_builder(self) -> bool:
        """Whether the image declares source-to-image build scripts."""
        if BUILDER_LABEL in self.labels:
            return True
        return any(e.split("=", 1)[0] == BUILDER_ENV_VARIABLE for e in self.env)


class ImageStreamRef(BaseModel):
    """An existing image stream tag on the platform."""

    model_config = ConfigDict(frozen=True)

    namespace: str
    name: str
    tag: str = "latest"

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}:{self.tag}"


class ComponentMatch(BaseModel):
    """An immutable resolution result.

    Attributes:
        value: The search term that produced this match
        argument: Concrete image identity (a pull spec)
        name: Display name
        description: Human readable description
        builder: Whether the image can build source code
        score: Match quality, 0.0 is a perfect match
        image: Image configuration, when the resolver could read it
        image_stream: The image stream tag, for platform matches
    """

    model_config = ConfigDict(frozen=True)

    value: str
    argument: str
    name: str
    description: str = ""
    builder: bool = False
    score: float = 0.0
    image: ImageMetadata | None = None
    image_stream: ImageStreamRef | None = None

    def __str__(self) -> str:
        if self.name and self.name != self.argument:
            return f"{self.argument!r} ({self.name})"
        return repr(self.argument)
