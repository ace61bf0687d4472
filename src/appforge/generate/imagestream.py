"""Image stream lookups against the platform API.

ImageStreamClient reads image streams and images from the platform REST API
with httpx. ImageStreamResolver searches an ordered list of namespaces for a
stream with the requested name and tag.

Example usage:
    >>> from appforge.config import PlatformConfig
    >>> config = PlatformConfig(server="https://platform:8443", token="...")
    >>> resolver = ImageStreamResolver(ImageStreamClient(config), ["myproject", "default"])
    >>> match = resolver.resolve("ruby:2.0")
"""

from __future__ import annotations

from typing import Any

import httpx

from appforge.config import PlatformConfig
from appforge.errors import ComponentNotFoundError, ConfigurationError, ReferenceSyntaxError, ResolutionError
from appforge.generate.dockerref import parse_docker_image_reference
from appforge.generate.match import ComponentMatch, ImageMetadata, ImageStreamRef
from appforge.logging import get_logger

logger = get_logger(__name__)


class ImageStreamClient:
    """Synchronous client for image stream and image resources.

    Attributes:
        config: Platform configuration
    """

    def __init__(
        self,
        config: PlatformConfig,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        if not config.server:
            raise ConfigurationError("a platform server is required for image stream lookups")
        self.config = config
        headers = {"Accept": "application/json"}
        if config.token:
            headers["Authorization"] = f"Bearer {config.token}"
        self._client = httpx.Client(
            base_url=config.server.rstrip("/"),
            headers=headers,
            timeout=httpx.Timeout(config.timeout_seconds),
            verify=config.verify_tls,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def _get_json(self, path: str) -> dict[str, Any] | None:
        try:
            response = self._client.get(path)
        except httpx.HTTPError as e:
            logger.warning("platform_request_failed", path=path, error=str(e))
            raise ResolutionError(f"unable to reach the platform at {self.config.server}: {e}") from e
        if response.status_code == 404:
            return None
        if response.status_code != 200:
            raise ResolutionError(
                f"platform returned HTTP {response.status_code} for {path}",
            )
        return response.json()

    def get_image_stream(self, namespace: str, name: str) -> dict[str, Any] | None:
        """Return the image stream, or None if it does not exist."""
        return self._get_json(f"/oapi/v1/namespaces/{namespace}/imagestreams/{name}")

    def get_image(self, name: str) -> dict[str, Any] | None:
        """Return an image by its name (digest), or None if it does not exist."""
        return self._get_json(f"/oapi/v1/images/{name}")


class ImageStreamResolver:
    """Resolves names to image stream tags.

    A reference that names a namespace is only looked up there; otherwise the
    namespaces are searched in order and the first stream found is used.
    """

    def __init__(self, client: ImageStreamClient, namespaces: list[str]) -> None:
        self.client = client
        self.namespaces = list(dict.fromkeys(namespaces))

    def resolve(self, value: str) -> ComponentMatch:
        try:
            ref = parse_docker_image_reference(value)
        except ReferenceSyntaxError as e:
            raise ComponentNotFoundError(value) from e
        if ref.registry or ref.digest or "/" in ref.namespace:
            raise ComponentNotFoundError(value)

        namespaces = [ref.namespace] if ref.namespace else self.namespaces
        tag = ref.tag or "latest"
        for namespace in namespaces:
            stream = self.client.get_image_stream(namespace, ref.name)
            if stream is None:
                continue

            event = self._find_tag(stream, tag)
            if event is None:
                raise ComponentNotFoundError(
                    value,
                    message=f"image stream {namespace}/{ref.name} exists but has no tag {tag!r}",
                )

            metadata = ImageMetadata()
            if event.get("image"):
                image = self.client.get_image(event["image"])
                if image is not None:
                    docker_metadata = image.get("dockerImageMetadata") or {}
                    metadata = ImageMetadata.from_docker_config(
                        docker_metadata.get("Config") or docker_metadata.get("ContainerConfig")
                    )

            stream_ref = ImageStreamRef(namespace=namespace, name=ref.name, tag=tag)
            logger.debug("image_stream_found", reference=value, image_stream=str(stream_ref))
            return ComponentMatch(
                value=value,
                argument=event.get("dockerImageReference") or str(stream_ref),
                name=f"{namespace}/{ref.name}:{tag}",
                description=f"Image stream {ref.name} (tag {tag!r}) in namespace {namespace}",
                builder=metadata.is_builder,
                image=metadata,
                image_stream=stream_ref,
            )

        raise ComponentNotFoundError(value)

    @staticmethod
    def _find_tag(stream: dict[str, Any], tag: str) -> dict[str, Any] | None:
        for entry in (stream.get("status") or {}).get("tags") or []:
            if entry.get("tag") == tag and entry.get("items"):
                return entry["items"][0]
        return None
