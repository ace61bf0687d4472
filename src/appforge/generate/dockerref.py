"""Docker image reference parsing.

Parses ``[registry/][namespace/]name[:tag][@digest]`` into its parts. The
first path segment is treated as a registry host when it contains a ``.`` or
a ``:`` or is ``localhost``, following the Docker CLI convention.
"""

from __future__ import annotations

import re

from pydantic import BaseModel, ConfigDict

from appforge.errors import ReferenceSyntaxError

_COMPONENT_PATTERN = re.compile(r"^[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*$")
_TAG_PATTERN = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.-]{0,127}$")
_DIGEST_PATTERN = re.compile(r"^[a-z0-9]+(?:[+._-][a-z0-9]+)*:[A-Fa-f0-9]{32,}$")
_HOST_PATTERN = re.compile(r"^[A-Za-z0-9.-]+(?::[0-9]+)?$")

DOCKER_HUB_REGISTRIES = frozenset({"docker.io", "index.docker.io", "registry-1.docker.io"})


class DockerImageReference(BaseModel):
    """A parsed Docker image reference.

    Attributes:
        registry: Registry host (with optional port), empty for the default registry
        namespace: Repository namespace, may contain several path segments
        name: Repository name
        tag: Tag, empty when none was given
        digest: Content digest, empty when none was given
    """

    model_config = ConfigDict(frozen=True)

    registry: str = ""
    namespace: str = ""
    name: str
    tag: str = ""
    digest: str = ""

    @property
    def repository(self) -> str:
        """Repository path without registry, tag or digest."""
        if self.namespace:
            return f"{self.namespace}/{self.name}"
        return self.name

    def without_tag(self) -> str:
        """Full reference minus tag and digest."""
        if self.registry:
            return f"{self.registry}/{self.repository}"
        return self.repository

    def with_tag(self, tag: str) -> DockerImageReference:
        """Copy of this reference pointing at another tag."""
        return self.model_copy(update={"tag": tag, "digest": ""})

    def __str__(self) -> str:
        value = self.without_tag()
        if self.tag:
            value += f":{self.tag}"
        if self.digest:
            value += f"@{self.digest}"
        return value


def parse_docker_image_reference(value: str) -> DockerImageReference:
    """Parse a Docker image reference string.

    Args:
        value: Reference such as ``mysql``, ``redhat/mysql:5.6`` or
            ``registry.example.com:5000/team/app@sha256:...``

    Returns:
        The parsed reference

    Raises:
        ReferenceSyntaxError: If the value is not a valid image reference
    """
    if not value or value != value.strip():
        raise ReferenceSyntaxError(f"{value!r} is not a valid image reference", value=value)

    remainder, _, digest = value.partition("@")
    if digest and not _DIGEST_PATTERN.match(digest):
        raise ReferenceSyntaxError(f"{value!r} has an invalid digest {digest!r}", value=value)

    segments = remainder.split("/")
    registry = ""
    if len(segments) > 1 and (
        "." in segments[0] or ":" in segments[0] or segments[0] == "localhost"
    ):
        registry = segments.pop(0)
        if not _HOST_PATTERN.match(registry):
            raise ReferenceSyntaxError(
                f"{value!r} has an invalid registry {registry!r}", value=value
            )

    last = segments[-1]
    tag = ""
    if ":" in last:
        last, tag = last.rsplit(":", 1)
        if not _TAG_PATTERN.match(tag):
            raise ReferenceSyntaxError(f"{value!r} has an invalid tag {tag!r}", value=value)
    segments[-1] = last

    for segment in segments:
        if not _COMPONENT_PATTERN.match(segment):
            raise ReferenceSyntaxError(
                f"{value!r} is not a valid image reference: {segment!r} must be "
                "lowercase letters, digits and separators",
                value=value,
            )

    return DockerImageReference(
        registry=registry,
        namespace="/".join(segments[:-1]),
        name=segments[-1],
        tag=tag,
        digest=digest,
    )
