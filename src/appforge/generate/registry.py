"""Docker registry lookups over the Registry HTTP API v2.

RegistryClient reads an image's manifest and configuration blob from a
registry with httpx, negotiating bearer tokens the way Docker Hub and most
OCI registries expect. DockerRegistryResolver turns that into a
ComponentMatch.

Example usage:
    >>> from appforge.config import RegistryConfig
    >>> with RegistryClient(RegistryConfig()) as client:
    ...     metadata = client.image_metadata(parse_docker_image_reference("mysql:8"))
"""

from __future__ import annotations

import json
import re
from typing import Any

import httpx

from appforge.config import RegistryConfig
from appforge.errors import ComponentNotFoundError, ReferenceSyntaxError, ResolutionError
from appforge.generate.dockerref import (
    DOCKER_HUB_REGISTRIES,
    DockerImageReference,
    parse_docker_image_reference,
)
from appforge.generate.match import ComponentMatch, ImageMetadata
from appforge.logging import get_logger

logger = get_logger(__name__)

_MANIFEST_LIST_TYPES = frozenset(
    {
        "application/vnd.docker.distribution.manifest.list.v2+json",
        "application/vnd.oci.image.index.v1+json",
    }
)
_ACCEPT_MANIFESTS = ", ".join(
    [
        "application/vnd.docker.distribution.manifest.v2+json",
        "application/vnd.docker.distribution.manifest.list.v2+json",
        "application/vnd.oci.image.manifest.v1+json",
        "application/vnd.oci.image.index.v1+json",
        "application/vnd.docker.distribution.manifest.v1+prettyjws",
    ]
)
_CHALLENGE_PARAM = re.compile(r'(\w+)="([^"]*)"')


class RegistryLookupError(ResolutionError):
    """Raised when a registry cannot be queried."""

    pass


class RegistryClient:
    """Synchronous registry API client.

    Attributes:
        config: Registry configuration
    """

    def __init__(
        self,
        config: RegistryConfig | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.config = config or RegistryConfig()
        self._client = httpx.Client(
            timeout=httpx.Timeout(self.config.timeout_seconds),
            follow_redirects=True,
            transport=transport,
        )
        self._tokens: dict[str, str] = {}

    def __enter__(self) -> RegistryClient:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def _base_url(self, ref: DockerImageReference) -> str:
        registry = ref.registry or self.config.default_registry
        if registry in DOCKER_HUB_REGISTRIES:
            registry = "registry-1.docker.io"
        scheme = "http" if self.config.insecure else "https"
        return f"{scheme}://{registry}/v2"

    def _repository(self, ref: DockerImageReference) -> str:
        registry = ref.registry or self.config.default_registry
        if registry in DOCKER_HUB_REGISTRIES and not ref.namespace:
            return f"library/{ref.name}"
        return ref.repository

    def _authenticate(self, challenge: str, repository: str) -> str | None:
        """Obtain a bearer token for a ``WWW-Authenticate`` challenge."""
        scheme, _, params_text = challenge.partition(" ")
        if scheme.lower() != "bearer":
            return None
        params = dict(_CHALLENGE_PARAM.findall(params_text))
        realm = params.pop("realm", None)
        if realm is None:
            return None
        params.setdefault("scope", f"repository:{repository}:pull")

        response = self._client.get(realm, params=params)
        if response.status_code != 200:
            logger.warning(
                "registry_token_request_failed",
                realm=realm,
                status_code=response.status_code,
            )
            return None
        data = response.json()
        return data.get("token") or data.get("access_token")

    def _get(self, url: str, repository: str, headers: dict[str, str] | None = None) -> httpx.Response:
        headers = dict(headers or {})
        token = self._tokens.get(repository)
        if token:
            headers["Authorization"] = f"Bearer {token}"
        response = self._client.get(url, headers=headers)
        if response.status_code == 401 and "WWW-Authenticate" in response.headers:
            token = self._authenticate(response.headers["WWW-Authenticate"], repository)
            if token:
                self._tokens[repository] = token
                headers["Authorization"] = f"Bearer {token}"
                response = self._client.get(url, headers=headers)
        return response

    def image_metadata(self, ref: DockerImageReference) -> ImageMetadata | None:
        """Read the configuration of an image.

        Args:
            ref: Image to look up (tag defaults to ``latest``)

        Returns:
            The image metadata, or None if the registry does not have the image

        Raises:
            RegistryLookupError: If the registry cannot be reached or answers with an error
        """
        base = self._base_url(ref)
        repository = self._repository(ref)
        reference = ref.digest or ref.tag or "latest"

        try:
            manifest = self._manifest(base, repository, reference)
            if manifest is None:
                return None

            if manifest.get("mediaType") in _MANIFEST_LIST_TYPES or "manifests" in manifest:
                digest = self._select_platform(manifest)
                if digest is None:
                    return ImageMetadata()
                manifest = self._manifest(base, repository, digest)
                if manifest is None:
                    return None

            if manifest.get("schemaVersion") == 1:
                return self._schema1_metadata(manifest)

            config_digest = (manifest.get("config") or {}).get("digest")
            if not config_digest:
                return ImageMetadata()
            response = self._get(f"{base}/{repository}/blobs/{config_digest}", repository)
            if response.status_code != 200:
                raise RegistryLookupError(
                    f"registry returned HTTP {response.status_code} for the configuration of {str(ref)!r}",
                    value=str(ref),
                )
            return ImageMetadata.from_docker_config(response.json().get("config"))
        except httpx.HTTPError as e:
            logger.warning(
                "registry_request_failed",
                image=str(ref),
                error=str(e),
                error_type=type(e).__name__,
            )
            raise RegistryLookupError(
                f"unable to reach the registry for {str(ref)!r}: {e}", value=str(ref)
            ) from e

    def _manifest(self, base: str, repository: str, reference: str) -> dict[str, Any] | None:
        response = self._get(
            f"{base}/{repository}/manifests/{reference}",
            repository,
            headers={"Accept": _ACCEPT_MANIFESTS},
        )
        if response.status_code in (401, 403, 404):
            # Docker Hub answers 401 for repositories that do not exist
            logger.debug(
                "registry_manifest_missing",
                repository=repository,
                reference=reference,
                status_code=response.status_code,
            )
            return None
        if response.status_code != 200:
            raise RegistryLookupError(
                f"registry returned HTTP {response.status_code} for {repository}:{reference}",
                value=f"{repository}:{reference}",
            )
        return response.json()

    @staticmethod
    def _select_platform(manifest_list: dict[str, Any]) -> str | None:
        manifests = manifest_list.get("manifests") or []
        for entry in manifests:
            platform = entry.get("platform") or {}
            if platform.get("os") == "linux" and platform.get("architecture") == "amd64":
                return entry.get("digest")
        return manifests[0].get("digest") if manifests else None

    @staticmethod
    def _schema1_metadata(manifest: dict[str, Any]) -> ImageMetadata:
        history = manifest.get("history") or []
        if not history:
            return ImageMetadata()
        v1 = json.loads(history[0].get("v1Compatibility") or "{}")
        return ImageMetadata.from_docker_config(v1.get("config"))


class DockerRegistryResolver:
    """Resolves names against a Docker registry."""

    def __init__(self, client: RegistryClient) -> None:
        self.client = client

    def resolve(self, value: str) -> ComponentMatch:
        try:
            ref = parse_docker_image_reference(value)
        except ReferenceSyntaxError as e:
            raise ComponentNotFoundError(value) from e

        metadata = self.client.image_metadata(ref)
        if metadata is None:
            raise ComponentNotFoundError(value)

        logger.debug("registry_image_found", reference=value, builder=metadata.is_builder)
        return ComponentMatch(
            value=value,
            argument=str(ref),
            name=value,
            description=f"Docker image {str(ref)!r} from the registry",
            builder=metadata.is_builder,
            image=metadata,
        )
