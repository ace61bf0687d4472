"""Component references and the builder that creates them.

A component reference is one user-supplied token naming an image, an image
stream or something to search for. It carries the resolver that will look it
up, the match once it is resolved, whether it is expected to build source
code, and the id of the source repository it builds from.

Component tokens follow ``image[~repository]``. Several components joined
with ``+`` form one group whose pipelines deploy together.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Protocol

from appforge.config import SourceConfig
from appforge.errors import (
    ConfigurationError,
    ErrorList,
    ReferenceSyntaxError,
)
from appforge.generate.dockerref import DockerImageReference, parse_docker_image_reference
from appforge.generate.match import ComponentMatch
from appforge.generate.source import (
    SourceRegistry,
    SourceRepository,
    is_possible_source_repository,
)
from appforge.logging import get_logger

logger = get_logger(__name__)


class Resolver(Protocol):
    """Turns a name into exactly one ComponentMatch.

    Implementations raise ComponentNotFoundError when nothing matches and
    MultipleMatchesError when more than one image matches.
    """

    def resolve(self, value: str) -> ComponentMatch: ...


def component_with_source(value: str) -> tuple[DockerImageReference, str]:
    """Split ``image~repository`` and validate the image part.

    Returns:
        The parsed image reference and the repository text (empty if absent)

    Raises:
        ReferenceSyntaxError: If the image part is not a valid reference
    """
    component, _, repository = value.partition("~")
    if "~" in value and not repository:
        raise ReferenceSyntaxError(
            f"{value!r} must name a source repository after '~'", value=value
        )
    return parse_docker_image_reference(component), repository


def is_component_reference(value: str) -> bool:
    """Return True if the argument can be read as an image or image group."""
    if not value or any(c.isspace() for c in value):
        return False
    first = value.split("+", 1)[0]
    try:
        component_with_source(first)
    except ReferenceSyntaxError:
        return False
    return True


class ComponentReference:
    """A single image or build target requested by the user.

    Attributes:
        id: Position of this reference in the run
        from_: The component text (image part of the token)
        reference: The parsed image reference
        argument: How the user supplied it, for messages (e.g. ``--image="ruby"``)
        resolver: Lookup strategy attached by the ReferenceBuilder
        match: The resolved image, None until resolved
        expect_to_build: Whether this image should build source code
        uses: Id of the SourceRepository this reference builds from
        group: Id of the group this reference belongs to
    """

    def __init__(
        self,
        id: int,
        from_: str,
        reference: DockerImageReference,
        group: int,
    ) -> None:
        self.id = id
        self.from_ = from_
        self.reference = reference
        self.group = group
        self.argument = from_
        self.resolver: Resolver | None = None
        self.match: ComponentMatch | None = None
        self.expect_to_build = False
        self.uses: int | None = None

    def __str__(self) -> str:
        return self.from_

    def __repr__(self) -> str:
        return f"ComponentReference({self.id}, {self.from_!r})"

    def resolve(self) -> ComponentMatch:
        """Resolve this reference once and remember the match.

        Raises:
            ConfigurationError: If no resolver was attached
            ResolutionError: If the resolver finds nothing or too much
        """
        if self.match is not None:
            return self.match
        if self.resolver is None:
            raise ConfigurationError(
                f"no lookup is configured that can resolve {self.argument}",
                value=self.from_,
            )
        self.match = self.resolver.resolve(self.from_)
        logger.debug(
            "component_resolved",
            reference=self.from_,
            match=self.match.argument,
            builder=self.match.builder,
        )
        return self.match

    def use(self, repository: SourceRepository) -> None:
        """Record that this reference builds from the repository (both directions)."""
        self.uses = repository.id
        repository.mark_used_by(self.id)

    def needs_source(self) -> bool:
        return self.expect_to_build and self.uses is None


class ComponentReferences(list[ComponentReference]):
    """Ordered component references with grouping helpers."""

    def needs_source(self) -> list[ComponentReference]:
        """References that will build but have no repository yet."""
        return [ref for ref in self if ref.needs_source()]

    def group(self) -> list[list[ComponentReference]]:
        """Split into groups, ordered by each group's first appearance."""
        groups: dict[int, list[ComponentReference]] = {}
        for ref in self:
            groups.setdefault(ref.group, []).append(ref)
        return list(groups.values())


class ReferenceBuilder:
    """Collects arguments into component references and source repositories.

    Errors for individual tokens are recorded rather than raised, so every
    bad token is reported at once by result().
    """

    def __init__(self, source_config: SourceConfig | None = None) -> None:
        self.references = ComponentReferences()
        self.repositories = SourceRegistry(source_config)
        self.errors = ErrorList()
        self._next_group = 0

    def add_source_repository(self, location: str) -> SourceRepository | None:
        """Register a source code location, recording an error if it is not one."""
        if not is_possible_source_repository(location):
            self.errors.append(
                ReferenceSyntaxError(
                    f"{location!r} is not a directory or a git repository URL",
                    value=location,
                )
            )
            return None
        return self.repositories.add(location)

    def add_images(
        self,
        values: Iterable[str],
        configure: Callable[[ComponentReference], None],
    ) -> None:
        """Add component tokens, calling configure on each new reference.

        ``a+b`` adds two references in one group; ``image~repo`` also adds the
        repository and marks the reference as a build of it.
        """
        for value in values:
            members = value.split("+")
            group = self._new_group()
            for member in members:
                try:
                    reference, repository = component_with_source(member)
                except ReferenceSyntaxError as e:
                    self.errors.append(e)
                    continue

                component = member.partition("~")[0]
                ref = ComponentReference(len(self.references), component, reference, group)
                configure(ref)

                if repository:
                    repo = self.add_source_repository(repository)
                    if repo is None:
                        continue
                    ref.expect_to_build = True
                    ref.use(repo)

                self.references.append(ref)

    def add_groups(self, groups: Iterable[str]) -> None:
        """Join previously added components into groups.

        Each group is a list of component names separated by ``+`` or ``,``.
        """
        for value in groups:
            names = [n for n in value.replace(",", "+").split("+") if n]
            if len(names) < 2:
                self.errors.append(
                    ReferenceSyntaxError(
                        f"group {value!r} must name at least two components", value=value
                    )
                )
                continue

            members: list[ComponentReference] = []
            for name in names:
                found = [ref for ref in self.references if ref.from_ == name]
                if not found:
                    self.errors.append(
                        ReferenceSyntaxError(
                            f"group {value!r} names {name!r}, which is not a component",
                            value=name,
                        )
                    )
                members.extend(found)

            if not members:
                continue
            group = self._new_group()
            for ref in members:
                ref.group = group

    def result(self) -> tuple[ComponentReferences, SourceRegistry, ErrorList]:
        return self.references, self.repositories, self.errors

    def _new_group(self) -> int:
        group = self._next_group
        self._next_group += 1
        return group
