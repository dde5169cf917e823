"""Shared keyring utility functions."""

from __future__ import annotations

__all__ = [
    "is_keyring_available",
]

import keyring
from keyring.backends.fail import Keyring as FailKeyring
from keyring.errors import KeyringError

from platform_auth.utils.logging.logger import get_logger

logger = get_logger("keyring")


def is_keyring_available() -> bool:
    """Check if a usable keyring backend is installed.

    Only inspects the selected backend; no secret is written. Failures of an
    installed backend surface later as SecureStoreUnavailableError.

    Returns:
        True if the backend is not keyring's "fail" backend.
    """
    try:
        backend = keyring.get_keyring()
    except KeyringError as e:
        logger.debug(
            {
                "event": "keyring_unavailable",
                "reason": "keyring_error",
                "error": str(e),
                "error_type": type(e).__name__,
            }
        )
        return False

    if isinstance(backend, FailKeyring):
        logger.debug(
            {
                "event": "keyring_unavailable",
                "reason": "fail_backend",
                "message": "Keyring using FailKeyring backend (no usable backend found)",
            }
        )
        return False

    return True
