"""Process-local token store.

Nothing is persisted. Used for tests, ephemeral service-account sessions and
as the last fallback of the "auto" store type.
"""

from __future__ import annotations

__all__ = ["MemoryStore"]

from typing import Iterable

from platform_auth.models import Account
from platform_auth.stores.token_store import TokenStore


class MemoryStore(TokenStore):
    """Token store keeping entries in an ordered in-memory list."""

    def __init__(self, token_refresh_threshold: int = 0) -> None:
        super().__init__(token_refresh_threshold)
        self._entries: list[Account] = []

    async def list(self) -> list[Account]:
        self._entries = self.purge(self._entries)
        return [entry.model_copy(deep=True) for entry in self._entries]

    async def set(self, account: Account) -> None:
        self._entries = self._upsert(self._entries, account.model_copy(deep=True))

    async def delete(self, accounts: str | Iterable[str], base_url: str | None = None) -> list[Account]:
        self._entries, removed = self._delete(self._entries, accounts, base_url)
        return removed

    async def clear(self, base_url: str | None = None) -> list[Account]:
        self._entries, removed = self._clear(self._entries, base_url)
        return removed
