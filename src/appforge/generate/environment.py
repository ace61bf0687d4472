"""Environment assignments (``KEY=VALUE``) supplied on the command line."""

from __future__ import annotations

import re

from appforge.errors import EnvironmentSyntaxError

_ENV_ARGUMENT_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*=")


def is_environment_argument(value: str) -> bool:
    """Return True if the argument looks like ``KEY=VALUE``."""
    return bool(_ENV_ARGUMENT_PATTERN.match(value))


class Environment(dict[str, str]):
    """Ordered environment mapping handed to every deployment."""

    def to_env_vars(self) -> list[dict[str, str]]:
        """Render as container ``env`` entries."""
        return [{"name": key, "value": value} for key, value in self.items()]


def parse_environment_arguments(
    values: list[str],
) -> tuple[Environment, list[str], list[EnvironmentSyntaxError]]:
    """Parse ``KEY=VALUE`` arguments in order.

    Later assignments to the same key replace earlier ones; the replaced keys
    are returned so the caller can report them.

    Args:
        values: Raw assignments

    Returns:
        The environment, the keys that were overwritten and the malformed entries
    """
    env = Environment()
    duplicates: list[str] = []
    errors: list[EnvironmentSyntaxError] = []
    for value in values:
        if not is_environment_argument(value):
            errors.append(
                EnvironmentSyntaxError(
                    f"environment variables must be of the form key=value: {value!r}",
                    value=value,
                )
            )
            continue
        key, _, val = value.partition("=")
        if key in env:
            duplicates.append(key)
        env[key] = val
    return env, duplicates, errors
