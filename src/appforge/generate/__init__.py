"""Reference resolution and pipeline generation for Appforge.

This package classifies arguments, turns them into component references and
source repositories, resolves references into images, detects what source
repositories contain and assembles the build and deploy pipelines that are
realized into platform objects.
"""

from __future__ import annotations

from appforge.generate.classify import ClassifiedArguments, classify_argument, classify_arguments
from appforge.generate.components import (
    ComponentReference,
    ComponentReferences,
    ReferenceBuilder,
    Resolver,
    is_component_reference,
)
from appforge.generate.detect import (
    Detector,
    DockerfileInfo,
    DockerfileTester,
    SourceLanguageType,
    SourceRepositoryEnumerator,
    SourceRepositoryInfo,
)
from appforge.generate.dockerref import DockerImageReference, parse_docker_image_reference
from appforge.generate.environment import (
    Environment,
    is_environment_argument,
    parse_environment_arguments,
)
from appforge.generate.imagestream import ImageStreamClient, ImageStreamResolver
from appforge.generate.match import ComponentMatch, ImageMetadata, ImageStreamRef
from appforge.generate.objects import AcceptFirst, add_services, serialize_objects
from appforge.generate.pipeline import (
    Pipeline,
    PipelineGroup,
    input_image_from_match,
    new_build_pipeline,
    new_image_pipeline,
    strategy_and_source_for_repository,
)
from appforge.generate.registry import DockerRegistryResolver, RegistryClient
from appforge.generate.resolve import (
    DockerClientResolver,
    PerfectMatchWeightedResolver,
    SearchResolver,
    WeightedResolver,
)
from appforge.generate.search import Searcher, StaticSearcher
from appforge.generate.source import (
    SourceRegistry,
    SourceRepository,
    is_possible_source_repository,
    is_remote_repository,
)

__all__ = [
    # Classification
    "ClassifiedArguments",
    "classify_argument",
    "classify_arguments",
    "is_component_reference",
    "is_environment_argument",
    "is_possible_source_repository",
    "is_remote_repository",
    # References
    "ComponentReference",
    "ComponentReferences",
    "DockerImageReference",
    "ReferenceBuilder",
    "parse_docker_image_reference",
    # Environment
    "Environment",
    "parse_environment_arguments",
    # Resolution
    "ComponentMatch",
    "DockerClientResolver",
    "DockerRegistryResolver",
    "ImageMetadata",
    "ImageStreamClient",
    "ImageStreamRef",
    "ImageStreamResolver",
    "PerfectMatchWeightedResolver",
    "RegistryClient",
    "Resolver",
    "SearchResolver",
    "WeightedResolver",
    # Source
    "Detector",
    "DockerfileInfo",
    "DockerfileTester",
    "Searcher",
    "SourceLanguageType",
    "SourceRegistry",
    "SourceRepository",
    "SourceRepositoryEnumerator",
    "SourceRepositoryInfo",
    "StaticSearcher",
    # Pipelines and objects
    "AcceptFirst",
    "Pipeline",
    "PipelineGroup",
    "add_services",
    "input_image_from_match",
    "new_build_pipeline",
    "new_image_pipeline",
    "serialize_objects",
    "strategy_and_source_for_repository",
]
