"""Unit tests for component references and the reference builder."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from appforge.config import SourceConfig
from appforge.errors import ConfigurationError, ReferenceSyntaxError
from appforge.generate.components import (
    ComponentReference,
    ReferenceBuilder,
    component_with_source,
    is_component_reference,
)
from appforge.generate.dockerref import DockerImageReference
from appforge.generate.match import ComponentMatch

REMOTE = "https://github.com/openshift/ruby-hello-world.git"


@pytest.fixture
def builder(tmp_path: Path) -> ReferenceBuilder:
    """Create a ReferenceBuilder cloning into a temporary directory."""
    return ReferenceBuilder(SourceConfig(clone_dir=tmp_path / "clones"))


def _noop(ref: ComponentReference) -> None:
    pass


class TestComponentWithSource:
    """Test the ``image~repository`` syntax."""

    def test_plain_image(self) -> None:
        ref, repository = component_with_source("redhat/ruby:2")
        assert ref.name == "ruby"
        assert repository == ""

    def test_image_with_repository(self) -> None:
        ref, repository = component_with_source(f"ruby~{REMOTE}")
        assert ref.name == "ruby"
        assert repository == REMOTE

    def test_missing_repository(self) -> None:
        with pytest.raises(ReferenceSyntaxError):
            component_with_source("ruby~")

    def test_is_component_reference(self) -> None:
        assert is_component_reference("mysql+php")
        assert not is_component_reference("")
        assert not is_component_reference("two words")
        assert not is_component_reference("Upper")


class TestComponentReference:
    """Test resolution and source association of a single reference."""

    def test_resolve_without_resolver(self) -> None:
        ref = ComponentReference(0, "mysql", DockerImageReference(name="mysql"), group=0)
        with pytest.raises(ConfigurationError) as exc_info:
            ref.resolve()
        assert exc_info.value.value == "mysql"

    def test_resolve_is_cached(self) -> None:
        ref = ComponentReference(0, "mysql", DockerImageReference(name="mysql"), group=0)
        resolver = MagicMock()
        resolver.resolve.return_value = ComponentMatch(value="mysql", argument="mysql", name="mysql")
        ref.resolver = resolver

        first = ref.resolve()
        second = ref.resolve()

        assert first is second
        assert ref.match is first
        resolver.resolve.assert_called_once_with("mysql")

    def test_needs_source(self, builder: ReferenceBuilder) -> None:
        ref = ComponentReference(0, "ruby", DockerImageReference(name="ruby"), group=0)
        assert not ref.needs_source()
        ref.expect_to_build = True
        assert ref.needs_source()

        repo = builder.repositories.add(REMOTE)
        ref.use(repo)
        assert not ref.needs_source()
        assert ref.uses == repo.id
        assert repo.used_by == {ref.id}
        assert repo.in_use()


class TestReferenceBuilder:
    """Test converting tokens into references and repositories."""

    def test_configure_is_called_for_each_reference(self, builder: ReferenceBuilder) -> None:
        seen: list[str] = []
        builder.add_images(["mysql", "redhat/ruby:2"], lambda ref: seen.append(ref.from_))
        refs, _, errs = builder.result()
        assert seen == ["mysql", "redhat/ruby:2"]
        assert [r.id for r in refs] == [0, 1]
        assert not errs

    def test_each_token_is_its_own_group(self, builder: ReferenceBuilder) -> None:
        builder.add_images(["mysql", "php"], _noop)
        refs, _, _ = builder.result()
        assert len(refs.group()) == 2

    def test_plus_joins_a_group(self, builder: ReferenceBuilder) -> None:
        builder.add_images(["php+mysql", "ruby"], _noop)
        refs, _, _ = builder.result()
        groups = refs.group()
        assert [[str(r) for r in g] for g in groups] == [["php", "mysql"], ["ruby"]]

    def test_tilde_pairs_image_and_repository(self, builder: ReferenceBuilder) -> None:
        builder.add_images([f"ruby~{REMOTE}"], _noop)
        refs, repos, errs = builder.result()
        assert not errs
        assert len(repos) == 1
        ref = refs[0]
        assert str(ref) == "ruby"
        assert ref.expect_to_build
        assert ref.uses == repos[0].id
        assert repos[0].used_by == {ref.id}

    def test_repository_is_shared_by_location(self, builder: ReferenceBuilder) -> None:
        builder.add_source_repository(REMOTE)
        builder.add_images([f"ruby~{REMOTE}"], _noop)
        _, repos, _ = builder.result()
        assert len(repos) == 1

    def test_invalid_tokens_are_collected(self, builder: ReferenceBuilder) -> None:
        builder.add_images(["Bad", "mysql", "ruby~"], _noop)
        builder.add_source_repository("/definitely/not/a/dir")
        refs, _, errs = builder.result()
        assert [str(r) for r in refs] == ["mysql"]
        assert [e.value for e in errs] == ["Bad", "ruby~", "/definitely/not/a/dir"]

    def test_groups_join_existing_components(self, builder: ReferenceBuilder) -> None:
        builder.add_images(["php", "mysql", "ruby"], _noop)
        builder.add_groups(["php,mysql"])
        refs, _, errs = builder.result()
        assert not errs
        assert [[str(r) for r in g] for g in refs.group()] == [["php", "mysql"], ["ruby"]]

    def test_group_errors(self, builder: ReferenceBuilder) -> None:
        builder.add_images(["php"], _noop)
        builder.add_groups(["php", "php+redis"])
        _, _, errs = builder.result()
        assert [e.value for e in errs] == ["php", "redis"]
