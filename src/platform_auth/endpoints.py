"""OIDC endpoint resolution for a base URL and realm."""

from __future__ import annotations

__all__ = ["get_endpoints"]

from platform_auth.exceptions import InvalidParameterError, MissingRequiredParameterError


def get_endpoints(base_url: str | None, realm: str | None) -> dict[str, str]:
    """Build the endpoint map for a realm.

    Args:
        base_url: Login server URL. A trailing slash is ignored.
        realm: Realm name.

    Returns:
        Mapping of endpoint name (auth, certs, logout, token, userinfo,
        well_known) to URL.

    Raises:
        MissingRequiredParameterError: If base_url or realm is empty.
        InvalidParameterError: If base_url or realm is not a string.
    """
    if not base_url:
        raise MissingRequiredParameterError("Invalid base URL")
    if not isinstance(base_url, str):
        raise InvalidParameterError("Expected base URL to be a string")
    if not realm:
        raise MissingRequiredParameterError("Invalid realm")
    if not isinstance(realm, str):
        raise InvalidParameterError("Expected realm to be a string")

    base_url = base_url.rstrip("/")
    prefix = f"{base_url}/auth/realms/{realm}"
    oidc = f"{prefix}/protocol/openid-connect"

    return {
        "auth": f"{oidc}/auth",
        "certs": f"{oidc}/certs",
        "logout": f"{oidc}/logout",
        "token": f"{oidc}/token",
        "userinfo": f"{oidc}/userinfo",
        "well_known": f"{prefix}/.well-known/openid-configuration",
    }
