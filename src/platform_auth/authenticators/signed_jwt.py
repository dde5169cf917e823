"""Client credentials grant authenticated by a signed JWT assertion (RFC 7523).

The client proves its identity with a short-lived JWT signed (RS256) by its
private key instead of sending a shared secret.
"""

from __future__ import annotations

__all__ = ["SignedJWT"]

import re
import time
import uuid
from pathlib import Path
from typing import TYPE_CHECKING, Any

import jwt

from platform_auth.authenticators.grant import Grant
from platform_auth.constants import JWT_BEARER_CLIENT_ASSERTION_TYPE, SIGNED_JWT_LIFETIME_SECONDS
from platform_auth.exceptions import InvalidArgumentError, InvalidFileError, InvalidSigningKeyError

if TYPE_CHECKING:
    from platform_auth.authenticators.authenticator import AuthenticatorConfig

_PEM_PRIVATE_KEY = re.compile(r"^-----BEGIN (RSA )?PRIVATE KEY-----")

# Re-sign when the cached assertion is this close to expiring (seconds)
_ASSERTION_RENEW_MARGIN_SECONDS = 60


class SignedJWT(Grant):
    """Non-interactive service login with a private key.

    Args:
        secret: PEM-encoded private key.
        secret_file: Path to a PEM-encoded private key. Read at construction.

    Raises:
        InvalidArgumentError: If neither secret nor secret_file is given.
        InvalidFileError: If secret_file does not exist or is not a file.
        InvalidSigningKeyError: If the key is not PEM formatted.
    """

    name = "SignedJWT"

    def __init__(self, secret: str | None = None, secret_file: str | Path | None = None) -> None:
        if secret_file:
            path = Path(secret_file).expanduser()
            if not path.exists():
                raise InvalidFileError(f"Specified private key file does not exist: {secret_file}")
            if not path.is_file():
                raise InvalidFileError(f"Specified private key is not a file: {secret_file}")
            try:
                secret = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                raise InvalidFileError(f"Unable to read private key file {secret_file}: {e}") from e

        if not isinstance(secret, str) or not secret:
            raise InvalidArgumentError("Expected either a private key or a private key file")
        if not _PEM_PRIVATE_KEY.match(secret):
            raise InvalidSigningKeyError("Private key must be PEM formatted")

        self.secret = secret
        self.secret_file = str(secret_file) if secret_file else None
        self._assertion: str | None = None
        self._assertion_expires: int = 0

    def hash_params(self) -> dict[str, Any]:
        return {"secret": self.secret}

    def signed_assertion(self, config: AuthenticatorConfig) -> str:
        """Return the client assertion, signing a new one when needed.

        Raises:
            InvalidSigningKeyError: If the key cannot be used for RS256 signing.
        """
        now = int(time.time())
        if self._assertion is not None and self._assertion_expires - now > _ASSERTION_RENEW_MARGIN_SECONDS:
            return self._assertion

        expires = now + SIGNED_JWT_LIFETIME_SECONDS
        payload = {
            "aud": config.endpoints["token"],
            "exp": expires,
            "iat": now,
            "iss": config.client_id,
            "jti": str(uuid.uuid4()),
            "sub": config.client_id,
        }
        try:
            self._assertion = jwt.encode(payload, self.secret, algorithm="RS256")
        except (ValueError, TypeError, jwt.PyJWTError) as e:
            raise InvalidSigningKeyError(f"Unable to sign client assertion: {e}") from e
        self._assertion_expires = expires
        return self._assertion

    def token_params(self, config: AuthenticatorConfig) -> dict[str, Any]:
        return {
            "client_assertion": self.signed_assertion(config),
            "client_assertion_type": JWT_BEARER_CLIENT_ASSERTION_TYPE,
            "grant_type": "client_credentials",
        }

    def refresh_token_params(self, config: AuthenticatorConfig) -> dict[str, Any]:
        return {
            "client_assertion": self.signed_assertion(config),
            "client_assertion_type": JWT_BEARER_CLIENT_ASSERTION_TYPE,
        }

    def authenticator_params(self) -> dict[str, Any]:
        return {"secret": self.secret}
