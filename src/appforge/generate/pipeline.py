"""Build and deploy pipelines.

A pipeline is the recipe for one deployable unit: either build an image from
source on top of a base image, or use an existing image as is. Every pipeline
deploys its image; the pipelines of one group share a single deployment.

Pipelines are realized into ImageStream, BuildConfig and DeploymentConfig
objects through an accept policy that drops duplicates.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

from appforge.errors import PipelineConstructionError, ReductionError, ReferenceSyntaxError
from appforge.generate.dockerref import DockerImageReference, parse_docker_image_reference
from appforge.generate.environment import Environment
from appforge.generate.match import ComponentMatch, ImageMetadata, ImageStreamRef
from appforge.generate.objects import Acceptor, Object, parse_port
from appforge.generate.source import SourceRepository
from appforge.logging import get_logger

logger = get_logger(__name__)

_INVALID_NAME_CHARS = re.compile(r"[^a-z0-9-]+")
MAX_NAME_LENGTH = 63

STRATEGY_DOCKER = "Docker"
STRATEGY_SOURCE = "Source"


def object_name(value: str) -> str:
    """Turn a repository or image name into a valid object name.

    Raises:
        PipelineConstructionError: If nothing usable is left
    """
    name = _INVALID_NAME_CHARS.sub("-", value.lower()).strip("-")[:MAX_NAME_LENGTH].rstrip("-")
    if not name:
        raise PipelineConstructionError(f"cannot derive an object name from {value!r}", value=value)
    return name


@dataclass
class ImageRef:
    """An image a pipeline consumes or produces.

    Attributes:
        reference: Docker reference of the image
        name: Object name used for its image stream and container
        stream: Existing platform image stream, if the image came from one
        metadata: Image configuration, if known
        output: True for images produced by a build in this run
    """

    reference: DockerImageReference
    name: str
    stream: ImageStreamRef | None = None
    metadata: ImageMetadata | None = None
    output: bool = False

    @property
    def tag(self) -> str:
        if self.stream is not None:
            return self.stream.tag
        return self.reference.tag or "latest"

    def pull_spec(self) -> str:
        if self.output:
            return f"{self.name}:{self.tag}"
        return str(self.reference)

    def from_object(self) -> dict[str, str]:
        """Object reference used by strategies and triggers."""
        if self.stream is not None:
            return {
                "kind": "ImageStreamTag",
                "name": f"{self.stream.name}:{self.stream.tag}",
                "namespace": self.stream.namespace,
            }
        return {"kind": "ImageStreamTag", "name": f"{self.name}:{self.tag}"}

    def image_stream(self) -> Object | None:
        """ImageStream tracking this image, None for existing platform streams."""
        if self.stream is not None:
            return None
        spec: dict[str, Any] = {}
        if not self.output:
            spec["dockerImageRepository"] = self.reference.without_tag()
        return {
            "kind": "ImageStream",
            "apiVersion": "v1",
            "metadata": {"name": self.name},
            "spec": spec,
        }

    def ports(self) -> list[dict[str, Any]]:
        if self.metadata is None:
            return []
        ports = []
        for value in self.metadata.exposed_ports:
            parsed = parse_port(value)
            if parsed is None:
                logger.debug("exposed_port_ignored", image=self.pull_spec(), port=value)
                continue
            ports.append({"containerPort": parsed[0], "protocol": parsed[1]})
        return ports


def input_image_from_match(match: ComponentMatch | None) -> ImageRef:
    """Describe the image a match points at.

    Raises:
        PipelineConstructionError: If the reference is unresolved or the match is not a usable image
    """
    if match is None:
        raise PipelineConstructionError("the reference has not been resolved")
    if match.image_stream is not None:
        stream = match.image_stream
        return ImageRef(
            reference=DockerImageReference(namespace=stream.namespace, name=stream.name, tag=stream.tag),
            name=object_name(stream.name),
            stream=stream,
            metadata=match.image,
        )
    try:
        reference = parse_docker_image_reference(match.argument)
    except ReferenceSyntaxError as e:
        raise PipelineConstructionError(
            f"{match.argument!r} is not a valid image reference", value=match.argument
        ) from e
    return ImageRef(reference=reference, name=object_name(reference.name), metadata=match.image)


@dataclass(frozen=True)
class SourceRef:
    """Where a build fetches its source from."""

    url: str
    ref: str | None
    name: str


@dataclass
class BuildStrategy:
    """How a build turns source into an image."""

    type: str
    base: ImageRef

    def to_spec(self) -> dict[str, Any]:
        if self.type == STRATEGY_DOCKER:
            return {"type": STRATEGY_DOCKER, "dockerStrategy": {"from": self.base.from_object()}}
        return {"type": STRATEGY_SOURCE, "sourceStrategy": {"from": self.base.from_object()}}


def strategy_and_source_for_repository(
    repository: SourceRepository | None,
    base: ImageRef,
    force_docker: bool = False,
) -> tuple[BuildStrategy, SourceRef]:
    """Pick the build strategy for a repository and describe its source.

    Repositories marked for Docker builds (or any repository when
    force_docker is set) use the Docker strategy layered on the base image;
    everything else is a source build with the base image as builder.

    Raises:
        PipelineConstructionError: If there is no repository
    """
    if repository is None:
        raise PipelineConstructionError("no source repository is associated with this image")
    strategy_type = STRATEGY_DOCKER if force_docker or repository.is_docker_build() else STRATEGY_SOURCE
    source = SourceRef(url=repository.remote_url(), ref=repository.ref, name=repository.name)
    return BuildStrategy(type=strategy_type, base=base), source


@dataclass
class BuildRef:
    """A build producing an image from source."""

    name: str
    source: SourceRef
    strategy: BuildStrategy
    output: ImageRef

    def to_object(self) -> Object:
        git: dict[str, str] = {"uri": self.source.url}
        if self.source.ref:
            git["ref"] = self.source.ref
        return {
            "kind": "BuildConfig",
            "apiVersion": "v1",
            "metadata": {"name": self.name},
            "spec": {
                "triggers": [
                    {"type": "ConfigChange"},
                    {"type": "ImageChange", "imageChange": {}},
                ],
                "source": {"type": "Git", "git": git},
                "strategy": self.strategy.to_spec(),
                "output": {"to": self.output.from_object()},
            },
        }


@dataclass
class DeploymentConfigRef:
    """A deployment running one container per image."""

    name: str
    images: list[ImageRef] = field(default_factory=list)
    env: Environment = field(default_factory=Environment)

    def add_image(self, image: ImageRef) -> None:
        """Add an image as a container unless it is already deployed.

        Raises:
            ReductionError: If a different image would get the same container name
        """
        for existing in self.images:
            if existing.name != image.name:
                continue
            if existing.pull_spec() == image.pull_spec():
                return
            raise ReductionError(
                f"{existing.pull_spec()!r} and {image.pull_spec()!r} would both run as "
                f"container {image.name!r} in deployment {self.name!r}",
                value=image.pull_spec(),
            )
        self.images.append(image)

    def to_object(self) -> Object:
        containers = []
        triggers: list[dict[str, Any]] = [{"type": "ConfigChange"}]
        for image in self.images:
            container: dict[str, Any] = {"name": image.name, "image": image.pull_spec()}
            ports = image.ports()
            if ports:
                container["ports"] = ports
            if self.env:
                container["env"] = self.env.to_env_vars()
            containers.append(container)
            triggers.append(
                {
                    "type": "ImageChange",
                    "imageChangeParams": {
                        "automatic": True,
                        "containerNames": [image.name],
                        "from": image.from_object(),
                    },
                }
            )
        return {
            "kind": "DeploymentConfig",
            "apiVersion": "v1",
            "metadata": {"name": self.name},
            "spec": {
                "replicas": 1,
                "selector": {"deploymentconfig": self.name},
                "triggers": triggers,
                "template": {
                    "metadata": {"labels": {"deploymentconfig": self.name}},
                    "spec": {"containers": containers},
                },
            },
        }


class Pipeline:
    """The build-and-deploy recipe for one reference.

    Attributes:
        from_: The reference text this pipeline was created for
        input: The image the user asked for
        build: The build, for build pipelines
        image: The image that gets deployed
        deployment: The deployment, once needs_deployment was called
    """

    def __init__(self, from_: str, input: ImageRef, image: ImageRef, build: BuildRef | None = None) -> None:
        self.from_ = from_
        self.input = input
        self.image = image
        self.build = build
        self.deployment: DeploymentConfigRef | None = None

    def __str__(self) -> str:
        return self.from_

    def __repr__(self) -> str:
        return f"Pipeline({self.from_!r}, {self.target()!r})"

    @property
    def name(self) -> str:
        return self.image.name

    def target(self) -> tuple[str, ...]:
        """What this pipeline produces; equal targets are interchangeable."""
        stream = str(self.input.stream) if self.input.stream else ""
        if self.build is not None:
            return (
                "build",
                self.input.pull_spec(),
                stream,
                self.build.strategy.type,
                self.build.source.url,
                self.build.source.ref or "",
            )
        return ("image", self.input.pull_spec(), stream)

    def needs_deployment(self, env: Environment) -> None:
        """Attach a deployment of this pipeline's image.

        Raises:
            PipelineConstructionError: If the pipeline already has a deployment
        """
        if self.deployment is not None:
            raise PipelineConstructionError(
                f"{self.from_!r} already has a deployment", value=self.from_
            )
        self.deployment = DeploymentConfigRef(name=self.name, images=[self.image], env=Environment(env))

    def objects(self, accept: Acceptor) -> list[Object]:
        """Realize this pipeline into objects, keeping those the policy accepts."""
        candidates: list[Object | None] = [self.input.image_stream()]
        if self.build is not None:
            candidates.append(self.build.output.image_stream())
            candidates.append(self.build.to_object())
        if self.deployment is not None:
            candidates.append(self.deployment.to_object())
        return [obj for obj in candidates if obj is not None and accept.accept(obj)]


def new_build_pipeline(
    from_: str,
    input: ImageRef,
    strategy: BuildStrategy,
    source: SourceRef,
    name: str | None = None,
) -> Pipeline:
    """Create a pipeline that builds source on top of the input image.

    The build and its output are named after the source unless a name is given.
    """
    if name is None:
        name = object_name(source.name) if source.name else input.name
    output = ImageRef(
        reference=DockerImageReference(name=name, tag="latest"),
        name=name,
        metadata=input.metadata,
        output=True,
    )
    build = BuildRef(name=name, source=source, strategy=strategy, output=output)
    return Pipeline(from_, input, image=output, build=build)


def new_image_pipeline(from_: str, input: ImageRef) -> Pipeline:
    """Create a pipeline that deploys an existing image."""
    return Pipeline(from_, input, image=input)


class PipelineGroup(list[Pipeline]):
    """Pipelines declared together, deduplicated and deployed as one."""

    def __str__(self) -> str:
        return ", ".join(repr(str(p)) for p in self)

    def reduce(self) -> None:
        """Merge pipelines with identical targets and share one deployment.

        Raises:
            ReductionError: If two different builds would produce the same image, or
                the group's images cannot run in one deployment
        """
        seen: dict[tuple[str, ...], Pipeline] = {}
        outputs: dict[str, Pipeline] = {}
        reduced: list[Pipeline] = []
        for pipeline in self:
            target = pipeline.target()
            if target in seen:
                logger.debug(
                    "pipeline_merged",
                    reference=pipeline.from_,
                    into=seen[target].from_,
                )
                continue
            if pipeline.build is not None:
                other = outputs.get(pipeline.name)
                if other is not None:
                    raise ReductionError(
                        f"{other.from_!r} and {pipeline.from_!r} would both build the image {pipeline.name!r}",
                        value=pipeline.from_,
                    )
                outputs[pipeline.name] = pipeline
            seen[target] = pipeline
            reduced.append(pipeline)

        deployment: DeploymentConfigRef | None = None
        for pipeline in reduced:
            if pipeline.deployment is None or pipeline.deployment is deployment:
                continue
            if deployment is None:
                deployment = pipeline.deployment
                continue
            for image in pipeline.deployment.images:
                deployment.add_image(image)
            pipeline.deployment = deployment

        self[:] = reduced
