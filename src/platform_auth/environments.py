"""Platform environments.

Maps an environment name (or one of its aliases) to the login base URL,
the platform web UI URL and the default realm.
"""

from __future__ import annotations

__all__ = [
    "ENVIRONMENTS",
    "Environment",
    "resolve_environment",
]

from dataclasses import dataclass

from platform_auth.constants import DEFAULT_ENV, DEFAULT_REALM
from platform_auth.exceptions import InvalidValueError


@dataclass(frozen=True)
class Environment:
    """A named platform deployment."""

    name: str
    base_url: str
    platform_url: str
    realm: str = DEFAULT_REALM


ENVIRONMENTS: dict[str, Environment] = {
    "staging": Environment(
        name="staging",
        base_url="https://login.axwaytest.net",
        platform_url="https://platform.axwaytest.net",
    ),
    "prod": Environment(
        name="prod",
        base_url="https://login.axway.com",
        platform_url="https://platform.axway.com",
    ),
}

_ALIASES: dict[str, str] = {
    "dev": "staging",
    "development": "staging",
    "preprod": "staging",
    "preproduction": "staging",
    "pre-production": "staging",
    "test": "staging",
    "production": "prod",
}


def resolve_environment(env: str | None = None) -> Environment:
    """Resolve an environment name or alias.

    Args:
        env: Environment name. None selects the default ("prod").

    Returns:
        The matching Environment.

    Raises:
        InvalidValueError: If the name is not a known environment or alias.
    """
    name = env or DEFAULT_ENV
    name = _ALIASES.get(name, name)
    try:
        return ENVIRONMENTS[name]
    except KeyError:
        raise InvalidValueError(f'Invalid environment "{env}"') from None
