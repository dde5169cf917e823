"""Encrypted file token store.

All entries are written as one JSON array, AES-128-CBC encrypted and stored
as hex text in a single file with owner-only permissions.

The built-in key and zero IV make this obfuscation, not protection: it keeps
tokens out of casual view and grep. SecureStore (secure_store.py) reuses this
format with a random key kept in the OS keyring.

Self-healing: a file that cannot be decrypted or parsed (foreign key,
truncated write, older format) is deleted and the store starts empty.
"""

from __future__ import annotations

__all__ = ["FileStore"]

import asyncio
import json
from pathlib import Path
from typing import Callable, Iterable, TypeVar

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from platform_auth.constants import FILE_STORE_FILENAME, FILE_STORE_KEY
from platform_auth.exceptions import MissingRequiredParameterError
from platform_auth.models import Account
from platform_auth.stores.token_store import TokenStore
from platform_auth.utils.file_helpers import atomic_write_text
from platform_auth.utils.logging.logger import get_logger

logger = get_logger("token_store")

_ZERO_IV = bytes(16)
_BLOCK_SIZE_BITS = 128

T = TypeVar("T")


class FileStore(TokenStore):
    """Token store persisted to ``<token_store_dir>/.tokenstore.v2``.

    Args:
        token_store_dir: Directory holding the store file. Created on first write.
        token_refresh_threshold: See TokenStore.

    Raises:
        MissingRequiredParameterError: If no directory is given.
    """

    filename: str = FILE_STORE_FILENAME

    def __init__(self, token_store_dir: str | Path | None = None, token_refresh_threshold: int = 0) -> None:
        super().__init__(token_refresh_threshold)
        if not token_store_dir:
            raise MissingRequiredParameterError("Token store requires a home directory")
        self.token_store_dir = Path(token_store_dir).expanduser()
        self.token_store_file = self.token_store_dir / self.filename
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Encryption
    # ------------------------------------------------------------------

    def _get_key(self) -> bytes:
        """Return the 16-byte AES key."""
        return FILE_STORE_KEY

    def _encode(self, entries: list[Account]) -> str:
        data = json.dumps([entry.model_dump(mode="json") for entry in entries]).encode("utf-8")

        padder = padding.PKCS7(_BLOCK_SIZE_BITS).padder()
        padded = padder.update(data) + padder.finalize()

        encryptor = Cipher(algorithms.AES(self._get_key()), modes.CBC(_ZERO_IV)).encryptor()
        return (encryptor.update(padded) + encryptor.finalize()).hex()

    def _decode(self, text: str) -> list[Account]:
        """Decrypt and parse the store file content.

        Raises:
            ValueError: If the content is not valid hex, cannot be decrypted
                with the current key, or is not a JSON array of accounts.
        """
        decryptor = Cipher(algorithms.AES(self._get_key()), modes.CBC(_ZERO_IV)).decryptor()
        padded = decryptor.update(bytes.fromhex(text.strip())) + decryptor.finalize()

        unpadder = padding.PKCS7(_BLOCK_SIZE_BITS).unpadder()
        data = unpadder.update(padded) + unpadder.finalize()

        items = json.loads(data.decode("utf-8"))
        if not isinstance(items, list):
            raise ValueError("Token store content is not a list")
        return [Account.model_validate(item) for item in items]

    # ------------------------------------------------------------------
    # File I/O
    # ------------------------------------------------------------------

    def _read(self) -> list[Account]:
        if not self.token_store_file.exists():
            return []

        try:
            return self._decode(self.token_store_file.read_text(encoding="utf-8"))
        except ValueError as e:
            logger.warning(
                {
                    "event": "token_store_corrupt",
                    "message": f"Unable to decode token store, removing {self.token_store_file}",
                    "path": str(self.token_store_file),
                    "error": str(e),
                    "error_type": type(e).__name__,
                }
            )
            self._remove_file()
            return []

    def _save(self, entries: list[Account]) -> None:
        if not entries:
            self._remove_file()
            return
        atomic_write_text(self.token_store_file, self._encode(entries))
        logger.debug(
            {
                "event": "token_store_saved",
                "message": f"Saved {len(entries)} account(s) to {self.token_store_file}",
                "path": str(self.token_store_file),
            }
        )

    def _remove_file(self) -> None:
        self.token_store_file.unlink(missing_ok=True)

    # ------------------------------------------------------------------
    # TokenStore contract
    # ------------------------------------------------------------------

    async def _locked(self, func: Callable[[], T]) -> T:
        """Run a read-modify-write of the store file in a worker thread.

        The lock keeps concurrent operations on this store from interleaving.
        """
        async with self._lock:
            return await asyncio.to_thread(func)

    def _load(self) -> list[Account]:
        entries = self._read()
        live = self.purge(entries)
        if len(live) != len(entries):
            self._save(live)
        return live

    async def list(self) -> list[Account]:
        return await self._locked(self._load)

    async def set(self, account: Account) -> None:
        def update() -> None:
            self._save(self._upsert(self._load(), account))

        await self._locked(update)

    async def delete(self, accounts: str | Iterable[str], base_url: str | None = None) -> list[Account]:
        def update() -> list[Account]:
            entries, removed = self._delete(self._load(), accounts, base_url)
            if removed:
                self._save(entries)
            return removed

        return await self._locked(update)

    async def clear(self, base_url: str | None = None) -> list[Account]:
        def update() -> list[Account]:
            entries, removed = self._clear(self._load(), base_url)
            if removed:
                self._save(entries)
            return removed

        return await self._locked(update)
