"""Authorization code grant with Proof Key for Code Exchange (RFC 7636)."""

from __future__ import annotations

__all__ = ["PKCE"]

import base64
import hashlib
import secrets
from typing import TYPE_CHECKING, Any

from platform_auth.authenticators.grant import Grant

if TYPE_CHECKING:
    from platform_auth.authenticators.authenticator import AuthenticatorConfig


def _generate_code_verifier() -> str:
    # 32 random bytes, base64 with the URL-unsafe characters swapped for
    # characters allowed in a verifier
    encoded = base64.b64encode(secrets.token_bytes(32)).decode("ascii")
    return encoded.replace("+", ".").replace("=", "_").replace("/", "_")


def _code_challenge(code_verifier: str) -> str:
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


class PKCE(Grant):
    """Interactive browser login; the default when no credentials are given."""

    name = "PKCE"

    def __init__(self) -> None:
        self.code_verifier = _generate_code_verifier()
        self.code_challenge = _code_challenge(self.code_verifier)

    @property
    def interactive(self) -> bool:
        return True

    def token_params(self, config: AuthenticatorConfig) -> dict[str, Any]:
        return {
            "code_verifier": self.code_verifier,
            "grant_type": "authorization_code",
        }

    def authorization_url_params(self, config: AuthenticatorConfig) -> dict[str, Any]:
        return {
            "code_challenge": self.code_challenge,
            "code_challenge_method": "S256",
            "grant_type": "authorization_code",
        }
