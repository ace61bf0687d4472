"""Error types and error aggregation for Appforge.

Every stage of a new-app run works on many independent items (arguments,
references, source repositories). Failures of individual items are collected
in an ErrorList and reported together once the stage has looked at every
item; the stage then raises a single AggregateError and later stages do not
run.

Example usage:
    >>> errs = ErrorList()
    >>> for ref in references:
    ...     try:
    ...         ref.resolve()
    ...     except ResolutionError as e:
    ...         errs.append(e)
    >>> errs.raise_if_any()
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from typing import Any


class AppforgeError(Exception):
    """Base exception for Appforge errors.

    Attributes:
        value: The literal user input (token, name or location) the error is about
    """

    def __init__(self, message: str, value: str | None = None) -> None:
        self.value = value
        super().__init__(message)


class ReferenceSyntaxError(AppforgeError):
    """Raised when an argument cannot be turned into a reference."""

    pass


class EnvironmentSyntaxError(ReferenceSyntaxError):
    """Raised when an environment assignment is malformed."""

    pass


class ConfigurationError(AppforgeError):
    """Raised when a lookup is requested that has not been configured."""

    pass


class ResolutionError(AppforgeError):
    """Base class for failures to resolve a reference into a single image."""

    pass


class ComponentNotFoundError(ResolutionError):
    """Raised when no resolver knows about a reference."""

    def __init__(self, value: str, message: str | None = None) -> None:
        super().__init__(
            message or f"no image or image stream matched {value!r}",
            value=value,
        )


class MultipleMatchesError(ResolutionError):
    """Raised when a reference matches more than one image.

    Attributes:
        candidates: Every match that was found, in resolver order
    """

    def __init__(self, value: str, candidates: list[Any]) -> None:
        self.candidates = list(candidates)
        listed = ", ".join(str(c) for c in self.candidates)
        super().__init__(
            f"multiple images or image streams matched {value!r}: {listed}",
            value=value,
        )


class BuildConsistencyError(AppforgeError):
    """Raised when a reference marked to build resolves to a non-builder image."""

    pass


class AssociationError(AppforgeError):
    """Raised when source locations cannot be paired with the images that build them."""

    pass


class DetectionError(AppforgeError):
    """Raised when a source location cannot be read or inspected."""

    pass


class SearchAmbiguityError(AppforgeError):
    """Raised when detected source needs a builder image the user must choose.

    Attributes:
        terms: Search terms that were tried
        candidates: Builder images that were found (possibly none)
    """

    def __init__(
        self,
        message: str,
        value: str,
        terms: list[str],
        candidates: list[Any] | None = None,
    ) -> None:
        self.terms = list(terms)
        self.candidates = list(candidates or [])
        super().__init__(message, value=value)


class PipelineConstructionError(AppforgeError):
    """Raised when a resolved reference cannot be turned into a pipeline."""

    pass


class ReductionError(AppforgeError):
    """Raised when the pipelines of a group cannot be merged."""

    pass


class AggregateError(AppforgeError):
    """A set of errors reported together.

    Attributes:
        errors: The collected errors, in the order they were recorded
    """

    def __init__(self, errors: Iterable[Exception]) -> None:
        self.errors = list(errors)
        super().__init__(self._render())

    def _render(self) -> str:
        if len(self.errors) == 1:
            return str(self.errors[0])
        lines = [f"{len(self.errors)} errors occurred:"]
        lines.extend(f"* {e}" for e in self.errors)
        return "\n".join(lines)


class ErrorList:
    """Ordered collection of errors gathered across independent items."""

    def __init__(self, errors: Iterable[Exception] | None = None) -> None:
        self._errors: list[Exception] = []
        if errors is not None:
            self.extend(errors)

    def append(self, error: Exception) -> None:
        """Record an error, flattening nested aggregates."""
        if isinstance(error, AggregateError):
            self._errors.extend(error.errors)
        else:
            self._errors.append(error)

    def extend(self, errors: Iterable[Exception]) -> None:
        """Merge another collection of errors into this one."""
        for error in errors:
            self.append(error)

    def __len__(self) -> int:
        return len(self._errors)

    def __iter__(self) -> Iterator[Exception]:
        return iter(self._errors)

    def __bool__(self) -> bool:
        return bool(self._errors)

    def aggregate(self) -> AggregateError | None:
        """Return the collected errors as one AggregateError, or None if empty."""
        if not self._errors:
            return None
        return AggregateError(self._errors)

    def raise_if_any(self) -> None:
        """Raise the collected errors as a single AggregateError.

        Raises:
            AggregateError: If at least one error was recorded
        """
        aggregate = self.aggregate()
        if aggregate is not None:
            raise aggregate
