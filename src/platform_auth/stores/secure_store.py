"""Keyring-backed encrypted file token store.

Same on-disk format as FileStore, but the AES key is 16 random bytes kept in
the OS keyring:
- macOS: Keychain
- Windows: Credential Locker
- Linux: Secret Service (GNOME Keyring, KDE Wallet)

The key is created on first use and stored hex-encoded under
(service name, service name).
"""

from __future__ import annotations

__all__ = ["SecureStore"]

import secrets
import sys
from pathlib import Path

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

from platform_auth.constants import (
    DEFAULT_SECURE_SERVICE_NAME,
    SECURE_STORE_FILENAME,
    SECURE_STORE_KEY_BYTES,
)
from platform_auth.exceptions import SecureStoreUnavailableError
from platform_auth.stores.file_store import FileStore
from platform_auth.stores.keyring_utils import is_keyring_available
from platform_auth.utils.logging.logger import get_logger

logger = get_logger("token_store")


def _unavailable_message(action: str, error: Exception) -> str:
    message = f"Secure token store is not available: failed to {action} the store key: {error}"
    if sys.platform.startswith("linux"):
        message += (
            "\nA Secret Service provider (e.g. gnome-keyring) must be installed and unlocked."
            " Use the file token store instead if none is available."
        )
    return message


class SecureStore(FileStore):
    """Encrypted file token store whose key lives in the OS keyring.

    Args:
        token_store_dir: Directory holding the store file.
        secure_service_name: Keyring service name for the store key.
        token_refresh_threshold: See TokenStore.

    Raises:
        MissingRequiredParameterError: If no directory is given.
        SecureStoreUnavailableError: If no usable keyring backend is installed.
    """

    filename: str = SECURE_STORE_FILENAME

    def __init__(
        self,
        token_store_dir: str | Path | None = None,
        secure_service_name: str | None = None,
        token_refresh_threshold: int = 0,
    ) -> None:
        super().__init__(token_store_dir, token_refresh_threshold)
        if not is_keyring_available():
            raise SecureStoreUnavailableError("Secure token store is not available: no keyring backend found")
        self.service_name = secure_service_name or DEFAULT_SECURE_SERVICE_NAME
        self._key: bytes | None = None

    def _get_key(self) -> bytes:
        if self._key is not None:
            return self._key

        try:
            stored = keyring.get_password(self.service_name, self.service_name)
        except KeyringError as e:
            raise SecureStoreUnavailableError(_unavailable_message("read", e)) from e

        if stored:
            try:
                key = bytes.fromhex(stored)
            except ValueError:
                key = b""
            if len(key) == SECURE_STORE_KEY_BYTES:
                self._key = key
                return key

            logger.warning(
                {
                    "event": "secure_store_bad_key",
                    "message": "Stored token store key is malformed, replacing it",
                    "service": self.service_name,
                }
            )
            self._delete_key()

        key = secrets.token_bytes(SECURE_STORE_KEY_BYTES)
        try:
            keyring.set_password(self.service_name, self.service_name, key.hex())
        except KeyringError as e:
            raise SecureStoreUnavailableError(_unavailable_message("save", e)) from e

        self._key = key
        return key

    def _delete_key(self) -> None:
        try:
            keyring.delete_password(self.service_name, self.service_name)
        except PasswordDeleteError:
            pass  # Already gone
        except KeyringError as e:
            raise SecureStoreUnavailableError(_unavailable_message("delete", e)) from e
