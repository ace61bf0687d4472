"""Resolvers and resolver combinators.

Every resolver exposes ``resolve(value) -> ComponentMatch`` and signals
failure with ComponentNotFoundError or MultipleMatchesError. Resolvers are
composed with PerfectMatchWeightedResolver, which asks its members in order
and returns the first unambiguous answer.

Example usage:
    >>> resolver = PerfectMatchWeightedResolver([
    ...     WeightedResolver(image_stream_resolver),
    ...     WeightedResolver(registry_resolver),
    ...     WeightedResolver(local_resolver),
    ... ])
    >>> match = resolver.resolve("mysql")
"""

from __future__ import annotations

import os
from collections.abc import Sequence
from dataclasses import dataclass

import docker
from docker.errors import DockerException, ImageNotFound

from appforge.config import DockerConfig
from appforge.errors import (
    ComponentNotFoundError,
    MultipleMatchesError,
    ReferenceSyntaxError,
    ResolutionError,
)
from appforge.generate.components import Resolver
from appforge.generate.dockerref import parse_docker_image_reference
from appforge.generate.match import ComponentMatch, ImageMetadata
from appforge.generate.search import Searcher
from appforge.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class WeightedResolver:
    """A resolver with a weight.

    The weight is carried for callers that want to score candidates; the
    ordered combinator below decides by position only.
    """

    resolver: Resolver | None
    weight: float = 0.0


class PerfectMatchWeightedResolver:
    """Ordered combinator: the first member with exactly one match wins.

    Members without a resolver are skipped. If no member yields a single
    match, the candidates of all ambiguous members are reported together;
    if there are none, the reference was not found.
    """

    def __init__(self, resolvers: Sequence[WeightedResolver]) -> None:
        self.resolvers = list(resolvers)

    def resolve(self, value: str) -> ComponentMatch:
        candidates: list[ComponentMatch] = []
        failures: list[ResolutionError] = []
        for weighted in self.resolvers:
            if weighted.resolver is None:
                continue
            try:
                match = weighted.resolver.resolve(value)
            except MultipleMatchesError as e:
                candidates.extend(e.candidates)
                continue
            except ComponentNotFoundError:
                continue
            except ResolutionError as e:
                logger.warning("resolver_lookup_failed", reference=value, error=str(e))
                failures.append(e)
                continue
            return match

        if candidates:
            raise MultipleMatchesError(value, candidates)
        if failures:
            details = "; ".join(str(f) for f in failures)
            raise ComponentNotFoundError(
                value,
                message=f"no image or image stream matched {value!r} ({details})",
            )
        raise ComponentNotFoundError(value)


class SearchResolver:
    """Adapts a Searcher so it can resolve a single name."""

    def __init__(self, searcher: Searcher) -> None:
        self.searcher = searcher

    def resolve(self, value: str) -> ComponentMatch:
        matches = self.searcher.search([value])
        if not matches:
            raise ComponentNotFoundError(value)
        if len(matches) > 1:
            raise MultipleMatchesError(value, matches)
        return matches[0]


class DockerClientResolver:
    """Looks images up in the local Docker daemon with docker-py.

    The Docker client connection is deferred until first use.
    """

    def __init__(
        self,
        config: DockerConfig | None = None,
        client: docker.DockerClient | None = None,
    ) -> None:
        self.config = config or DockerConfig()
        self._client = client

    def _get_client(self) -> docker.DockerClient:
        """Get or create the Docker client connection.

        Raises:
            DockerException: If unable to connect to Docker daemon
        """
        if self._client is None:
            docker_host = os.environ.get("DOCKER_HOST")
            if docker_host:
                self._client = docker.DockerClient(base_url=docker_host)
            elif self.config.rootless:
                xdg_runtime = os.environ.get("XDG_RUNTIME_DIR", f"/run/user/{os.getuid()}")
                try:
                    self._client = docker.DockerClient(base_url=f"unix://{xdg_runtime}/docker.sock")
                except DockerException:
                    self._client = docker.DockerClient.from_env()
            else:
                self._client = docker.DockerClient.from_env()
            logger.debug("docker_client_connected", rootless=self.config.rootless)
        return self._client

    def resolve(self, value: str) -> ComponentMatch:
        try:
            parse_docker_image_reference(value)
        except ReferenceSyntaxError as e:
            raise ComponentNotFoundError(value) from e

        try:
            image = self._get_client().images.get(value)
        except ImageNotFound as e:
            raise ComponentNotFoundError(value) from e
        except DockerException as e:
            raise ResolutionError(
                f"unable to search the local Docker daemon for {value!r}: {e}",
                value=value,
            ) from e

        metadata = ImageMetadata.from_docker_config(image.attrs.get("Config"))
        tags = list(getattr(image, "tags", None) or [])
        return ComponentMatch(
            value=value,
            argument=value,
            name=tags[0] if tags else value,
            description=f"Docker image {value!r} from the local daemon ({image.short_id})",
            builder=metadata.is_builder,
            image=metadata,
        )
