"""Configuration for the Auth orchestrator.

AuthOptions holds instance-level defaults. Per-call overrides are layered on
top with ``merged()``, environment defaults (base URL, realm, platform URL)
are filled in last by ``Auth.apply_defaults()``.

Example usage:
    # Explicit options
    options = AuthOptions(client_id="my-cli", env="staging", token_store_dir="~/.my-cli")

    # From PLATFORM_AUTH_* environment variables
    options = load_auth_options(client_id="my-cli")
"""

from __future__ import annotations

__all__ = [
    "AuthOptions",
    "TokenStoreType",
    "load_auth_options",
]

import os
from typing import Any, Literal, Mapping

from pydantic import BaseModel, ConfigDict, Field

from platform_auth.constants import (
    CALLBACK_HOST,
    DEFAULT_ACCESS_TYPE,
    DEFAULT_CALLBACK_TIMEOUT_SECONDS,
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
    DEFAULT_RESPONSE_TYPE,
    DEFAULT_SCOPE,
    DEFAULT_TOKEN_STORE_DIR,
    DEFAULT_TOKEN_STORE_TYPE,
    ENV_VAR_PREFIX,
)

TokenStoreType = Literal["auto", "secure", "file", "memory", "none"]


class AuthOptions(BaseModel):
    """Options for Auth and the authenticators it creates.

    Attributes:
        env: Environment name or alias (default "prod").
        base_url: Login server URL. Defaults to the environment's.
        platform_url: Platform web UI URL, target of the post-login redirect.
        realm: Realm name. Defaults to the environment's.
        client_id: OAuth client id.
        client_secret: Client secret (ClientSecret grant).
        service_account: Use client_credentials instead of the browser flow
            for client_secret.
        username, password: Resource owner credentials (OwnerPassword grant).
        secret, secret_file: PEM private key or path to one (SignedJWT grant).
        endpoints: Per-endpoint URL overrides (auth, certs, logout, token,
            userinfo, well_known).
        scope, response_type, access_type: Authorization request parameters.
        interactive_login_timeout: Seconds to wait for the browser redirect.
        server_host: Interface the login callback server binds (loopback).
        server_port: Preferred callback server port, 1024-65535. Validated
            when Auth or an Authenticator is created.
        request_timeout: HTTP timeout for server requests (seconds).
        token_refresh_threshold: Refresh access tokens this many seconds early.
        token_store_type: Store backend: auto, secure, file, memory or none.
        token_store_dir: Directory for file-backed stores.
        secure_service_name: Keyring service name for SecureStore.
        persist_secrets: Keep authenticator secrets on stored accounts.
            Defaults to True when the store is a SecureStore.
    """

    model_config = ConfigDict(extra="forbid")

    env: str | None = None
    base_url: str | None = None
    platform_url: str | None = None
    realm: str | None = None

    client_id: str | None = None
    client_secret: str | None = None
    service_account: bool = False
    username: str | None = None
    password: str | None = None
    secret: str | None = None
    secret_file: str | None = None

    endpoints: dict[str, str] | None = None
    scope: str = DEFAULT_SCOPE
    response_type: str = DEFAULT_RESPONSE_TYPE
    access_type: str = DEFAULT_ACCESS_TYPE

    interactive_login_timeout: float = Field(default=DEFAULT_CALLBACK_TIMEOUT_SECONDS, gt=0)
    server_host: str = CALLBACK_HOST
    server_port: int | str | None = None
    request_timeout: float = Field(default=DEFAULT_REQUEST_TIMEOUT_SECONDS, gt=0)

    token_refresh_threshold: int = Field(default=0, ge=0)
    token_store_type: TokenStoreType | None = DEFAULT_TOKEN_STORE_TYPE
    token_store_dir: str | None = None
    secure_service_name: str | None = None
    persist_secrets: bool | None = None

    def merged(self, **overrides: Any) -> AuthOptions:
        """Return a validated copy with non-None overrides applied.

        Raises:
            pydantic.ValidationError: If an override is unknown or invalid.
        """
        updates = {key: value for key, value in overrides.items() if value is not None}
        if not updates:
            return self
        return AuthOptions.model_validate({**self.model_dump(), **updates})


# Environment variable name (without prefix) -> AuthOptions field
_ENV_FIELDS: dict[str, str] = {
    "ENV": "env",
    "BASE_URL": "base_url",
    "REALM": "realm",
    "CLIENT_ID": "client_id",
    "CLIENT_SECRET": "client_secret",
    "SECRET_FILE": "secret_file",
    "SERVER_PORT": "server_port",
    "TOKEN_STORE_TYPE": "token_store_type",
    "TOKEN_STORE_DIR": "token_store_dir",
}


def load_auth_options(environ: Mapping[str, str] | None = None, **overrides: Any) -> AuthOptions:
    """Build AuthOptions from PLATFORM_AUTH_* environment variables.

    The token store directory defaults to the per-user config directory.
    Keyword overrides win over environment variables.

    Args:
        environ: Variables to read (default: os.environ).
        **overrides: AuthOptions fields.

    Returns:
        Validated AuthOptions.

    Raises:
        pydantic.ValidationError: If a value is invalid.
    """
    environ = os.environ if environ is None else environ

    data: dict[str, Any] = {"token_store_dir": DEFAULT_TOKEN_STORE_DIR}
    for suffix, field in _ENV_FIELDS.items():
        value = environ.get(f"{ENV_VAR_PREFIX}{suffix}")
        if value:
            data[field] = value

    data.update({key: value for key, value in overrides.items() if value is not None})
    return AuthOptions.model_validate(data)
