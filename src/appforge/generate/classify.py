"""Sort raw command line arguments into buckets by what they look like."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from appforge.generate.components import is_component_reference
from appforge.generate.environment import is_environment_argument
from appforge.generate.source import is_possible_source_repository


@dataclass
class ClassifiedArguments:
    """Arguments split by kind, each list in input order.

    Attributes:
        environment: ``KEY=VALUE`` assignments
        sources: Source code locations
        components: Image, image stream or search references
        unknown: Arguments that matched nothing
    """

    environment: list[str] = field(default_factory=list)
    sources: list[str] = field(default_factory=list)
    components: list[str] = field(default_factory=list)
    unknown: list[str] = field(default_factory=list)


def classify_argument(value: str) -> str | None:
    """Return the bucket name for one argument, or None for empty input.

    Checks are made in priority order: environment assignment, source
    location, component reference.
    """
    if not value:
        return None
    if is_environment_argument(value):
        return "environment"
    if is_possible_source_repository(value):
        return "sources"
    if is_component_reference(value):
        return "components"
    return "unknown"


def classify_arguments(args: Iterable[str]) -> ClassifiedArguments:
    """Split arguments into environment, source, component and unknown lists.

    Empty arguments are dropped.
    """
    result = ClassifiedArguments()
    for value in args:
        bucket = classify_argument(value)
        if bucket is None:
            continue
        getattr(result, bucket).append(value)
    return result
