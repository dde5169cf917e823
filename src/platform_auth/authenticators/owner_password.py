"""Resource owner password credentials grant."""

from __future__ import annotations

__all__ = ["OwnerPassword"]

from typing import TYPE_CHECKING, Any

from platform_auth.authenticators.grant import Grant
from platform_auth.exceptions import InvalidArgumentError

if TYPE_CHECKING:
    from platform_auth.authenticators.authenticator import AuthenticatorConfig


class OwnerPassword(Grant):
    """Non-interactive login with a username and password.

    Raises:
        InvalidArgumentError: If username is empty or password is not a string.
    """

    name = "OwnerPassword"

    def __init__(self, username: str, password: str) -> None:
        if not isinstance(username, str) or not username:
            raise InvalidArgumentError("Expected username to be a non-empty string")
        if not isinstance(password, str):
            raise InvalidArgumentError("Expected password to be a string")
        self.username = username
        self.password = password

    def hash_params(self) -> dict[str, Any]:
        return {"username": self.username}

    def token_params(self, config: AuthenticatorConfig) -> dict[str, Any]:
        return {
            "grant_type": "password",
            "password": self.password,
            "username": self.username,
        }

    def authenticator_params(self) -> dict[str, Any]:
        return {"password": self.password, "username": self.username}
