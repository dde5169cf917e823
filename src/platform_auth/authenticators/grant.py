"""Grant strategy contract.

An Authenticator owns the shared OAuth plumbing (endpoints, token exchange,
user info, login orchestration). What differs between authentication methods
is captured by a Grant: the grant type, the extra parameters it sends, and
the credentials that make its sessions distinct.
"""

from __future__ import annotations

__all__ = ["Grant"]

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, ClassVar

if TYPE_CHECKING:
    from platform_auth.authenticators.authenticator import AuthenticatorConfig


class Grant(ABC):
    """Abstract base class for grant strategies.

    Attributes:
        name: Strategy name recorded on stored accounts.
    """

    name: ClassVar[str]

    @property
    def interactive(self) -> bool:
        """True if the grant needs a browser redirect carrying an auth code."""
        return False

    def hash_params(self) -> dict[str, Any]:
        """Credentials distinguishing sessions on the same client and realm."""
        return {}

    @abstractmethod
    def token_params(self, config: AuthenticatorConfig) -> dict[str, Any]:
        """Parameters of the primary token request, including grant_type."""

    def refresh_token_params(self, config: AuthenticatorConfig) -> dict[str, Any]:
        """Extra parameters sent with a refresh_token grant."""
        return {}

    def authorization_url_params(self, config: AuthenticatorConfig) -> dict[str, Any]:
        """Extra query parameters for the browser authorization URL."""
        return {}

    def authenticator_params(self) -> dict[str, Any]:
        """Secrets needed to rebuild this grant, saved when persist_secrets is on."""
        return {}
