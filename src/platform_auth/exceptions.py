"""Custom exceptions for platform-auth.

This module contains all custom exceptions used throughout the package.
Every exception derives from PlatformAuthError and carries a stable ``code``
so callers can branch on the kind of failure rather than on the message.

Caller Misuse (raised synchronously, before any network access):
    - InvalidArgumentError: Wrong argument type or shape
    - InvalidParameterError: Option of the wrong type
    - InvalidValueError: Option with an unsupported value
    - InvalidRangeError: Numeric option out of range
    - MissingRequiredParameterError: Required option not supplied

Authentication Failures (reject the in-flight call):
    - AuthFailedError: Server rejected the request or sent a malformed response
    - InvalidGrantError: Refresh token is permanently dead, drop the account
    - MissingAuthCodeError: Interactive grant called without an auth code
    - AuthTimeoutError: Interactive login exceeded its deadline
    - AuthCancelledError: Pending callback cancelled by the caller
    - ServerStoppedError: Callback server stopped while a callback was pending

Key and Storage Failures:
    - InvalidFileError: Signing key file missing or unreadable
    - InvalidSigningKeyError: Signing key is not a PEM private key
    - SecureStoreUnavailableError: OS secret manager missing or unusable

Usage:
    from platform_auth.exceptions import InvalidGrantError, AuthFailedError
"""

from __future__ import annotations

__all__ = [
    "AuthCancelledError",
    "AuthFailedError",
    "AuthTimeoutError",
    "InvalidArgumentError",
    "InvalidFileError",
    "InvalidGrantError",
    "InvalidParameterError",
    "InvalidRangeError",
    "InvalidSigningKeyError",
    "InvalidValueError",
    "MissingAuthCodeError",
    "MissingRequiredParameterError",
    "PlatformAuthError",
    "SecureStoreUnavailableError",
    "ServerStoppedError",
]

from typing import Any


class PlatformAuthError(Exception):
    """Base exception for all platform-auth failures.

    Attributes:
        code: Stable error code string for programmatic handling.
    """

    code: str = "ERR_PLATFORM_AUTH"


# =============================================================================
# Caller Misuse (construction-time, synchronous)
# =============================================================================


class InvalidArgumentError(PlatformAuthError, TypeError):
    """An argument has the wrong type or shape.

    Raised when:
    - OwnerPassword username/password are missing or not strings
    - logout() receives accounts that are neither a string nor a list
    - manual login is requested for a non-interactive grant
    """

    code = "ERR_INVALID_ARGUMENT"


class InvalidParameterError(PlatformAuthError, TypeError):
    """An option has the wrong type (e.g. non-string client id)."""

    code = "ERR_INVALID_PARAMETER"


class InvalidValueError(PlatformAuthError, ValueError):
    """An option has an unsupported value (unknown environment, unknown endpoint)."""

    code = "ERR_INVALID_VALUE"


class InvalidRangeError(PlatformAuthError, ValueError):
    """A numeric option is out of range (e.g. negative refresh threshold)."""

    code = "ERR_INVALID_RANGE"


class MissingRequiredParameterError(PlatformAuthError, TypeError):
    """A required option was not supplied.

    Raised when:
    - No base URL could be resolved from env or base_url
    - A file-backed token store is created without a directory
    - A store lookup has neither an account name nor a hash
    """

    code = "ERR_MISSING_REQUIRED_PARAMETER"


# =============================================================================
# Authentication Failures
# =============================================================================


class AuthFailedError(PlatformAuthError):
    """The authorization server rejected a request or returned garbage.

    Attributes:
        status_code: HTTP status of the failed response, if any.
        body: Parsed response body, if any.
    """

    code = "ERR_AUTH_FAILED"

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        body: Any = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class InvalidGrantError(AuthFailedError):
    """The server answered ``error=invalid_grant``.

    The refresh token (or auth code) is permanently rejected. Callers should
    drop the stored account and re-authenticate instead of retrying.
    """

    code = "EINVALIDGRANT"


class MissingAuthCodeError(PlatformAuthError):
    """An interactive grant was asked for a token without an auth code."""

    code = "ERR_MISSING_AUTH_CODE"


class AuthTimeoutError(PlatformAuthError):
    """An interactive login callback was not received before its deadline."""

    code = "ERR_AUTH_TIMEOUT"


class AuthCancelledError(PlatformAuthError):
    """A pending login callback was cancelled by the caller."""

    code = "ERR_AUTH_CANCELLED"


class ServerStoppedError(PlatformAuthError):
    """The callback server was force-stopped while a callback was pending."""

    code = "ERR_SERVER_STOPPED"


# =============================================================================
# Key and Storage Failures
# =============================================================================


class InvalidFileError(PlatformAuthError):
    """A file argument does not exist or is not a regular file."""

    code = "ERR_INVALID_FILE"


class InvalidSigningKeyError(InvalidFileError):
    """The signing secret is not a PEM-formatted private key."""

    code = "ERR_INVALID_SIGNING_KEY"


class SecureStoreUnavailableError(PlatformAuthError):
    """The OS secret manager is missing or unusable.

    Raised when:
    - No usable keyring backend is installed
    - Reading or writing the store key fails in the keyring
    """

    code = "ERR_SECURE_STORE_UNAVAILABLE"
