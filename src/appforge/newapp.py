"""The new-app run: from raw arguments to a serialized object list.

AppConfig collects arguments and flags, then runs the stages in order:

    validate -> resolve -> ensure_has_source -> detect_source
             -> build_pipelines -> realize objects -> add services -> serialize

Each stage looks at every item it is given and reports all problems it found
as one AggregateError; the run stops at the first stage that fails.

Example usage:
    >>> config = AppConfig.from_config(load_config())
    >>> unknown = config.add_arguments(["mysql", "https://github.com/org/app.git"])
    >>> config.run(sys.stdout, help_fn=print_help)
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from typing import Any, TextIO

from appforge.config import AppforgeConfig
from appforge.errors import (
    AggregateError,
    AppforgeError,
    AssociationError,
    BuildConsistencyError,
    ErrorList,
    PipelineConstructionError,
    ReductionError,
    ReferenceSyntaxError,
    SearchAmbiguityError,
)
from appforge.generate.classify import classify_arguments
from appforge.generate.components import ComponentReference, ComponentReferences, ReferenceBuilder, Resolver
from appforge.generate.detect import Detector, SourceRepositoryEnumerator
from appforge.generate.environment import Environment, parse_environment_arguments
from appforge.generate.imagestream import ImageStreamClient, ImageStreamResolver
from appforge.generate.objects import AcceptFirst, Object, add_services, serialize_objects
from appforge.generate.pipeline import (
    Pipeline,
    PipelineGroup,
    input_image_from_match,
    new_build_pipeline,
    new_image_pipeline,
    object_name,
    strategy_and_source_for_repository,
)
from appforge.generate.registry import DockerRegistryResolver, RegistryClient
from appforge.generate.resolve import DockerClientResolver, PerfectMatchWeightedResolver, WeightedResolver
from appforge.generate.search import Searcher, StaticSearcher
from appforge.generate.source import SourceRegistry
from appforge.logging import bind_run_context, get_logger

logger = get_logger(__name__)

BUILD_TYPES = frozenset({"source", "docker"})


class AppConfig:
    """Inputs and collaborators of one new-app run.

    Attributes:
        source_repositories: Source code locations (``--code`` and positional)
        components: Images, image streams or search terms (positional)
        image_streams: Explicit image stream references (``--image``)
        docker_images: Explicit Docker image references (``--docker-image``)
        groups: Component groups (``--group``)
        environment: ``KEY=VALUE`` assignments (``--env`` and positional)
        type_of_build: ``source``, ``docker`` or empty (``--build``)
        output_format: ``yaml`` or ``json``
    """

    def __init__(
        self,
        config: AppforgeConfig | None = None,
        *,
        local_docker_resolver: Resolver | None = None,
        docker_registry_resolver: Resolver | None = None,
        image_stream_resolver: Resolver | None = None,
        searcher: Searcher | None = None,
        detector: Detector | None = None,
    ) -> None:
        self.config = config or AppforgeConfig()
        self.source_repositories: list[str] = []
        self.components: list[str] = []
        self.image_streams: list[str] = []
        self.docker_images: list[str] = []
        self.groups: list[str] = []
        self.environment: list[str] = []
        self.type_of_build = ""
        self.output_format = self.config.output_format

        self.local_docker_resolver = local_docker_resolver
        self.docker_registry_resolver = docker_registry_resolver
        self.image_stream_resolver = image_stream_resolver
        self.searcher: Searcher = searcher or StaticSearcher()
        self.detector: Detector = detector or SourceRepositoryEnumerator()

    @classmethod
    def from_config(cls, config: AppforgeConfig) -> AppConfig:
        """Create an AppConfig wired to the lookups the configuration enables."""
        local = DockerClientResolver(config.docker) if config.docker.enabled else None
        registry = DockerRegistryResolver(RegistryClient(config.registry))

        image_streams = None
        if config.platform.server:
            image_streams = ImageStreamResolver(
                ImageStreamClient(config.platform),
                namespaces=[config.platform.namespace, "default"],
            )

        return cls(
            config,
            local_docker_resolver=local,
            docker_registry_resolver=registry,
            image_stream_resolver=image_streams,
        )

    def add_arguments(self, args: list[str]) -> list[str]:
        """Sort positional arguments into buckets by what they look like.

        Returns:
            Arguments that could not be classified
        """
        classified = classify_arguments(args)
        self.environment.extend(classified.environment)
        self.source_repositories.extend(classified.sources)
        self.components.extend(classified.components)
        return classified.unknown

    def validate(self) -> tuple[ComponentReferences, SourceRegistry, Environment]:
        """Convert the collected arguments into references.

        Raises:
            AggregateError: Listing every argument that could not be used
        """
        b = ReferenceBuilder(self.config.source)
        for location in self.source_repositories:
            b.add_source_repository(location)

        def configure_docker_image(ref: ComponentReference) -> None:
            ref.argument = f"--docker-image={ref.from_!r}"
            ref.resolver = self.docker_registry_resolver

        def configure_image_stream(ref: ComponentReference) -> None:
            ref.argument = f"--image={ref.from_!r}"
            ref.resolver = self.image_stream_resolver

        def configure_component(ref: ComponentReference) -> None:
            ref.resolver = PerfectMatchWeightedResolver(
                [
                    WeightedResolver(self.image_stream_resolver, 0.0),
                    WeightedResolver(self.docker_registry_resolver, 0.0),
                    WeightedResolver(self.local_docker_resolver, 0.0),
                ]
            )

        b.add_images(self.docker_images, configure_docker_image)
        b.add_images(self.image_streams, configure_image_stream)
        b.add_images(self.components, configure_component)
        b.add_groups(self.groups)

        refs, repos, errs = b.result()

        if self.type_of_build:
            if self.type_of_build not in BUILD_TYPES:
                errs.append(
                    ReferenceSyntaxError(
                        f"--build must be one of {sorted(BUILD_TYPES)}, not {self.type_of_build!r}",
                        value=self.type_of_build,
                    )
                )
            if len(repos) == 0:
                errs.append(
                    ReferenceSyntaxError(
                        "when --build is specified you must provide at least one source code location",
                        value=self.type_of_build,
                    )
                )
            for ref in refs:
                ref.expect_to_build = True

        env, duplicates, env_errs = parse_environment_arguments(self.environment)
        for key in duplicates:
            logger.info("environment_variable_overwritten", key=key)
        errs.extend(env_errs)

        errs.raise_if_any()
        return refs, repos, env

    def resolve(self, components: ComponentReferences) -> None:
        """Resolve every reference and check it against the requested build mode.

        Raises:
            AggregateError: Listing every reference that failed
        """
        errs = ErrorList()
        for ref in components:
            try:
                match = ref.resolve()
            except AppforgeError as e:
                errs.append(e)
                continue

            if not ref.expect_to_build and match.builder:
                if self.type_of_build != "docker":
                    logger.info("builder_image_expects_source", reference=str(ref), image=match.argument)
                    ref.expect_to_build = True
            elif ref.expect_to_build and not match.builder:
                if not self.type_of_build:
                    errs.append(
                        BuildConsistencyError(
                            f"none of the images that match {str(ref)!r} can build source code - "
                            "check whether this is the image you want to use, then use --build=source "
                            "to build using source or --build=docker to treat this as a Docker base "
                            "image and set up a layered Docker build",
                            value=str(ref),
                        )
                    )
        errs.raise_if_any()

    def ensure_has_source(self, components: ComponentReferences, repositories: SourceRegistry) -> None:
        """Ensure every reference that builds has source code associated with it.

        Raises:
            AggregateError: Holding an AssociationError when the number of
                repositories makes the pairing impossible or ambiguous
        """
        requires_source = components.needs_source()
        if not requires_source:
            return

        errs = ErrorList()
        names = ", ".join(repr(str(r)) for r in requires_source)
        if len(repositories) == 1:
            repo = repositories[0]
            logger.info("source_repository_selected", location=repo.location)
            for ref in requires_source:
                ref.use(repo)
        elif len(repositories) > 1 and len(requires_source) == 1:
            ref = requires_source[0]
            errs.append(
                AssociationError(
                    f"there are multiple code locations provided - use '{ref}~<repo>' "
                    "to declare which code goes with the image",
                    value=str(ref),
                )
            )
        elif len(repositories) > 1:
            errs.append(
                AssociationError(
                    "there are multiple code locations provided - use '[image]~[repo]' to declare "
                    f"which code goes with which image ({names})",
                    value=names,
                )
            )
        elif len(requires_source) == 1:
            ref = requires_source[0]
            errs.append(
                AssociationError(
                    f"the image {str(ref)!r} will build source code, so you must specify "
                    "a repository via --code",
                    value=str(ref),
                )
            )
        else:
            errs.append(
                AssociationError(
                    f"you must provide at least one source code repository with --code for the images: {names}",
                    value=names,
                )
            )
        errs.raise_if_any()

    def detect_source(self, repositories: SourceRegistry) -> None:
        """Work out how to build every repository no image claimed.

        Repositories with a Dockerfile are built with it. For the rest a
        builder image is searched for; the candidates are always reported
        back to the user rather than picked automatically.

        Raises:
            AggregateError: Listing every repository that needs a decision
        """
        errs = ErrorList()
        for repo in repositories:
            if repo.in_use():
                continue
            try:
                path = repo.local_path()
                info = self.detector.detect(path)
            except AppforgeError as e:
                errs.append(e)
                continue

            if info.dockerfile is not None:
                logger.info("dockerfile_detected", location=repo.location, path=str(info.dockerfile.path))
                repo.use_docker_build()
                continue

            terms = info.terms()
            try:
                matches = self.searcher.search(terms)
            except AppforgeError as e:
                errs.append(e)
                continue

            if not matches:
                errs.append(
                    SearchAmbiguityError(
                        f"we could not find any images that match the source repo {repo.location!r} "
                        f"(looked for: {terms}) and this repository does not have a Dockerfile - "
                        "you'll need to choose a source builder image to continue",
                        value=repo.location,
                        terms=terms,
                    )
                )
                continue

            listed = ", ".join(str(m) for m in matches)
            errs.append(
                SearchAmbiguityError(
                    f"found the following possible images to use to build this source repository: "
                    f"{listed} - to continue, you'll need to specify which image to use with "
                    f"{repo.location!r}",
                    value=repo.location,
                    terms=terms,
                    candidates=matches,
                )
            )
        errs.raise_if_any()

    def build_pipelines(
        self,
        components: ComponentReferences,
        repositories: SourceRegistry,
        environment: Environment,
    ) -> PipelineGroup:
        """Convert resolved references into pipelines, reduced per group.

        Raises:
            AggregateError: Holding a PipelineConstructionError for each reference that
                could not be built or included, and a ReductionError for each group
                whose pipelines cannot be combined
        """
        errs = ErrorList()
        pipelines = PipelineGroup()
        for group in components.group():
            logger.debug("pipeline_group", references=[str(r) for r in group])
            common = PipelineGroup()
            failed = False
            for ref in group:
                try:
                    pipeline = self._pipeline_for(ref, repositories)
                except PipelineConstructionError as e:
                    errs.append(e)
                    failed = True
                    continue
                try:
                    pipeline.needs_deployment(environment)
                except AppforgeError as e:
                    errs.append(
                        PipelineConstructionError(
                            f"can't set up a deployment for {str(ref)!r}: {e}", value=str(ref)
                        )
                    )
                    failed = True
                    continue
                common.append(pipeline)
            if failed:
                continue

            try:
                common.reduce()
            except ReductionError as e:
                errs.append(ReductionError(f"can't create a pipeline from {common}: {e}", value=e.value))
                continue
            pipelines.extend(common)
        errs.raise_if_any()
        return pipelines

    def _pipeline_for(self, ref: ComponentReference, repositories: SourceRegistry) -> Pipeline:
        if ref.expect_to_build:
            repo = repositories.get(ref.uses) if ref.uses is not None else None
            logger.debug("source_build_planned", reference=str(ref), source=str(repo))
            try:
                image = input_image_from_match(ref.match)
                strategy, source = strategy_and_source_for_repository(
                    repo, image, force_docker=self.type_of_build == "docker"
                )
                name = None
                # a repository shared by several builders gets one output per builder
                if repo is not None and len(repo.used_by) > 1:
                    name = object_name(f"{source.name}-{image.name}")
                return new_build_pipeline(str(ref), image, strategy, source, name=name)
            except AppforgeError as e:
                raise PipelineConstructionError(f"can't build {str(ref)!r}: {e}", value=str(ref)) from e

        logger.debug("image_included", reference=str(ref))
        try:
            return new_image_pipeline(str(ref), input_image_from_match(ref.match))
        except AppforgeError as e:
            raise PipelineConstructionError(f"can't include {str(ref)!r}: {e}", value=str(ref)) from e

    def realize(self, pipelines: PipelineGroup) -> list[Object]:
        """Turn pipelines into objects, keeping the first of any duplicate.

        Raises:
            AggregateError: Holding a PipelineConstructionError per pipeline that failed
        """
        errs = ErrorList()
        objects: list[Object] = []
        accept = AcceptFirst()
        for p in pipelines:
            try:
                objects.extend(p.objects(accept))
            except AppforgeError as e:
                errs.append(PipelineConstructionError(f"can't setup {p.from_!r}: {e}", value=p.from_))
        errs.raise_if_any()
        return add_services(objects)

    def run(self, out: TextIO, help_fn: Callable[[], Any]) -> Any:
        """Execute the run and write the object list to out.

        Args:
            out: Stream receiving the serialized objects
            help_fn: Called (and its result returned) when no source and no images were given

        Raises:
            AggregateError: When a stage reports errors
        """
        bind_run_context(run_id=uuid.uuid4().hex[:12])

        components, repositories, environment = self.validate()

        has_source = len(repositories) != 0
        has_images = len(components) != 0
        if not has_source and not has_images:
            return help_fn()

        self.resolve(components)
        self.ensure_has_source(components, repositories)

        logger.debug("code", repositories=[str(r) for r in repositories])
        logger.debug("images", components=[str(c) for c in components])

        self.detect_source(repositories)

        pipelines = self.build_pipelines(components, repositories, environment)
        objects = self.realize(pipelines)
        serialize_objects(objects, out, self.output_format)
        logger.info("objects_written", count=len(objects), output_format=self.output_format)
        return None


def format_error(error: Exception) -> list[str]:
    """Lines describing an error, one per aggregated entry."""
    if isinstance(error, AggregateError):
        return [str(e) for e in error.errors]
    return [str(error)]
