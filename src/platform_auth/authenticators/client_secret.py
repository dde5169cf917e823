"""Client secret grant, either as a service account or through the browser."""

from __future__ import annotations

__all__ = ["ClientSecret"]

from typing import TYPE_CHECKING, Any

from platform_auth.authenticators.grant import Grant
from platform_auth.exceptions import InvalidArgumentError

if TYPE_CHECKING:
    from platform_auth.authenticators.authenticator import AuthenticatorConfig


class ClientSecret(Grant):
    """Authenticate a confidential client with its secret.

    Args:
        client_secret: The client secret.
        service_account: Use client_credentials (non-interactive). Otherwise
            the user logs in through the browser and the code is exchanged
            with the secret.

    Raises:
        InvalidArgumentError: If client_secret is empty or not a string.
    """

    name = "ClientSecret"

    def __init__(self, client_secret: str, service_account: bool = False) -> None:
        if not isinstance(client_secret, str) or not client_secret:
            raise InvalidArgumentError("Expected client secret to be a non-empty string")
        self.client_secret = client_secret
        self.service_account = service_account

    @property
    def interactive(self) -> bool:
        return not self.service_account

    def hash_params(self) -> dict[str, Any]:
        return {"client_secret": self.client_secret}

    def token_params(self, config: AuthenticatorConfig) -> dict[str, Any]:
        return {
            "client_secret": self.client_secret,
            "grant_type": "authorization_code" if self.interactive else "client_credentials",
        }

    def refresh_token_params(self, config: AuthenticatorConfig) -> dict[str, Any]:
        return {"client_secret": self.client_secret}

    def authenticator_params(self) -> dict[str, Any]:
        return {"client_secret": self.client_secret}
