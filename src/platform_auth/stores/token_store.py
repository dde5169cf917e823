"""Token store contract.

A token store persists Accounts. Every backend implements list/set/delete/clear;
lookup and purging of dead entries are shared here.

Entries are unique per (name, base URL): set() replaces an existing entry
with the same name on the same login server.
"""

from __future__ import annotations

__all__ = ["TokenStore"]

import re
from abc import ABC, abstractmethod
from typing import Callable, Iterable

from platform_auth.exceptions import (
    InvalidParameterError,
    InvalidRangeError,
    MissingRequiredParameterError,
)
from platform_auth.models import Account
from platform_auth.utils.helpers import now_ms

_PROTOCOL = re.compile(r"^.*//")


def normalize_base_url(url: str | None) -> str:
    """Strip the protocol and trailing slash so http/https variants compare equal."""
    if not url:
        return ""
    return _PROTOCOL.sub("", url).rstrip("/")


class TokenStore(ABC):
    """Abstract base class for token store backends.

    Args:
        token_refresh_threshold: Seconds before access token expiry at which
            an entry is treated as due for refresh. Entries inside the window
            without a usable refresh token are purged.

    Raises:
        InvalidParameterError: If the threshold is not an integer.
        InvalidRangeError: If the threshold is negative.
    """

    def __init__(self, token_refresh_threshold: int = 0) -> None:
        if token_refresh_threshold is None:
            token_refresh_threshold = 0
        if isinstance(token_refresh_threshold, bool) or not isinstance(token_refresh_threshold, int):
            raise InvalidParameterError("Expected token refresh threshold to be a number of seconds")
        if token_refresh_threshold < 0:
            raise InvalidRangeError("Token refresh threshold must be greater than or equal to zero")
        self.token_refresh_threshold = token_refresh_threshold

    # ------------------------------------------------------------------
    # Backend contract
    # ------------------------------------------------------------------

    @abstractmethod
    async def list(self) -> list[Account]:
        """Return all live entries (dead entries already purged)."""

    @abstractmethod
    async def set(self, account: Account) -> None:
        """Insert or replace the entry for (account.name, account.auth.base_url)."""

    @abstractmethod
    async def delete(self, accounts: str | Iterable[str], base_url: str | None = None) -> list[Account]:
        """Remove entries by name or hash.

        Args:
            accounts: Account name/hash or a list of them.
            base_url: Only remove entries issued by this login server.

        Returns:
            The removed entries, marked expired.
        """

    @abstractmethod
    async def clear(self, base_url: str | None = None) -> list[Account]:
        """Remove all entries, optionally only those for one login server.

        Returns:
            The removed entries, marked expired.
        """

    # ------------------------------------------------------------------
    # Shared behavior
    # ------------------------------------------------------------------

    async def get(
        self,
        account_name: str | None = None,
        hash: str | None = None,
        base_url: str | None = None,
    ) -> Account | None:
        """Find a live entry by account name or hash.

        Raises:
            MissingRequiredParameterError: If neither account_name nor hash is given.
        """
        if not account_name and not hash:
            raise MissingRequiredParameterError("Must specify either the account name or hash")

        base = normalize_base_url(base_url)
        for entry in await self.list():
            if base and normalize_base_url(entry.auth.base_url) != base:
                continue
            if (account_name and entry.name == account_name) or (hash and entry.hash == hash):
                return entry
        return None

    def purge(self, entries: list[Account]) -> list[Account]:
        """Drop entries whose access and refresh tokens are both unusable.

        An access token expiring within the refresh threshold counts as unusable.
        """
        now = now_ms()
        threshold_ms = self.token_refresh_threshold * 1000
        return [
            entry
            for entry in entries
            if entry.auth.expires.access > now + threshold_ms
            or (entry.auth.expires.refresh is not None and entry.auth.expires.refresh > now)
        ]

    # Helpers for backends operating on an in-memory list of entries

    @staticmethod
    def _upsert(entries: list[Account], account: Account) -> list[Account]:
        base = normalize_base_url(account.auth.base_url)
        kept = [
            entry
            for entry in entries
            if not (entry.name == account.name and normalize_base_url(entry.auth.base_url) == base)
        ]
        kept.append(account)
        return kept

    @staticmethod
    def _partition(
        entries: list[Account], predicate: Callable[[Account], bool]
    ) -> tuple[list[Account], list[Account]]:
        kept: list[Account] = []
        removed: list[Account] = []
        for entry in entries:
            if predicate(entry):
                entry.auth.mark_expired()
                removed.append(entry)
            else:
                kept.append(entry)
        return kept, removed

    @classmethod
    def _delete(
        cls, entries: list[Account], accounts: str | Iterable[str], base_url: str | None
    ) -> tuple[list[Account], list[Account]]:
        names = {accounts} if isinstance(accounts, str) else set(accounts)
        base = normalize_base_url(base_url)
        return cls._partition(
            entries,
            lambda entry: (entry.name in names or entry.hash in names)
            and (not base or normalize_base_url(entry.auth.base_url) == base),
        )

    @classmethod
    def _clear(cls, entries: list[Account], base_url: str | None) -> tuple[list[Account], list[Account]]:
        base = normalize_base_url(base_url)
        return cls._partition(
            entries,
            lambda entry: not base or normalize_base_url(entry.auth.base_url) == base,
        )
