"""Tests for the TokenStore contract, exercised through MemoryStore."""

from __future__ import annotations

from collections.abc import Callable

import pytest

from platform_auth.exceptions import InvalidParameterError, InvalidRangeError, MissingRequiredParameterError
from platform_auth.models import Account
from platform_auth.stores import MemoryStore

MakeAccount = Callable[..., Account]


# ============================================================================
# Tests: Construction
# ============================================================================


class TestRefreshThreshold:
    """Tests for token_refresh_threshold validation."""

    def test_none_means_zero(self) -> None:
        """Given None, the threshold is 0."""
        assert MemoryStore(None).token_refresh_threshold == 0  # type: ignore[arg-type]

    @pytest.mark.parametrize("value", ["5", 1.5, True])
    def test_non_integer_rejected(self, value: object) -> None:
        """Given a non-integer threshold, raises InvalidParameterError."""
        with pytest.raises(InvalidParameterError):
            MemoryStore(value)  # type: ignore[arg-type]

    def test_negative_rejected(self) -> None:
        """Given a negative threshold, raises InvalidRangeError."""
        with pytest.raises(InvalidRangeError):
            MemoryStore(-1)


# ============================================================================
# Tests: set / list / get
# ============================================================================


class TestSetAndGet:
    """Tests for inserting and looking up entries."""

    async def test_set_then_list(self, make_account: MakeAccount) -> None:
        """Given a stored account, list returns an equal copy."""
        # Arrange
        store = MemoryStore()
        account = make_account()

        # Act
        await store.set(account)
        entries = await store.list()

        # Assert
        assert len(entries) == 1
        assert entries[0] == account
        assert entries[0] is not account

    async def test_returned_entries_are_copies(self, make_account: MakeAccount) -> None:
        """Given a listed entry mutated by the caller, the store is unaffected."""
        # Arrange
        store = MemoryStore()
        await store.set(make_account())

        # Act
        (entry,) = await store.list()
        entry.user.email = "changed@bar.com"

        # Assert
        (stored,) = await store.list()
        assert stored.user.email == "foo@bar.com"

    async def test_set_replaces_same_name_and_base_url(self, make_account: MakeAccount) -> None:
        """Given two accounts with the same name on http/https variants of a server, one entry remains."""
        # Arrange
        store = MemoryStore()
        first = make_account(base_url="https://login.example.com")
        second = make_account(base_url="http://login.example.com/")
        second.user.first_name = "Second"

        # Act
        await store.set(first)
        await store.set(second)

        # Assert
        entries = await store.list()
        assert len(entries) == 1
        assert entries[0].user.first_name == "Second"

    async def test_same_name_on_other_server_kept(self, make_account: MakeAccount) -> None:
        """Given the same account name on two servers, both entries are kept."""
        # Arrange
        store = MemoryStore()

        # Act
        await store.set(make_account(base_url="https://login.example.com"))
        await store.set(make_account(base_url="https://login.other.com"))

        # Assert
        assert len(await store.list()) == 2

    async def test_get_by_name_and_hash(self, make_account: MakeAccount) -> None:
        """Given a stored account, get finds it by name or by hash."""
        # Arrange
        store = MemoryStore()
        account = make_account(hash="test_client:abc123")
        await store.set(account)

        # Act & Assert
        assert (await store.get(account_name=account.name)).name == account.name
        assert (await store.get(hash="test_client:abc123")).name == account.name
        assert await store.get(account_name="test_client:nobody@bar.com") is None

    async def test_get_filters_by_base_url(self, make_account: MakeAccount) -> None:
        """Given a base URL filter, only entries of that server match."""
        # Arrange
        store = MemoryStore()
        account = make_account(base_url="https://login.example.com")
        await store.set(account)

        # Act & Assert
        assert await store.get(account_name=account.name, base_url="https://login.other.com") is None
        assert await store.get(account_name=account.name, base_url="http://login.example.com/") is not None

    async def test_get_requires_name_or_hash(self) -> None:
        """Given neither name nor hash, raises MissingRequiredParameterError."""
        with pytest.raises(MissingRequiredParameterError):
            await MemoryStore().get()


# ============================================================================
# Tests: Purging
# ============================================================================


class TestPurge:
    """Tests for dropping dead entries."""

    async def test_dead_entry_dropped(self, make_account: MakeAccount) -> None:
        """Given an entry with expired access and refresh tokens, list drops it."""
        # Arrange
        store = MemoryStore()
        await store.set(make_account(access_in=-10, refresh_in=-5))

        # Act & Assert
        assert await store.list() == []

    async def test_refreshable_entry_kept(self, make_account: MakeAccount) -> None:
        """Given an expired access token with a live refresh token, the entry is kept."""
        # Arrange
        store = MemoryStore()
        await store.set(make_account(access_in=-10, refresh_in=600))

        # Act
        (entry,) = await store.list()

        # Assert
        assert entry.expired is True
        assert entry.dead is False

    async def test_threshold_purges_soon_expiring_entry(self, make_account: MakeAccount) -> None:
        """Given an access token inside the threshold and no refresh token, the entry is dropped."""
        # Arrange
        store = MemoryStore(token_refresh_threshold=60)
        await store.set(make_account(access_in=30, refresh_in=None))

        # Act & Assert
        assert await store.list() == []


# ============================================================================
# Tests: delete / clear
# ============================================================================


class TestDeleteAndClear:
    """Tests for removing entries."""

    async def test_delete_by_name_returns_expired_entries(self, make_account: MakeAccount) -> None:
        """Given a stored account, delete removes it and returns it marked expired."""
        # Arrange
        store = MemoryStore()
        account = make_account()
        await store.set(account)

        # Act
        removed = await store.delete(account.name)

        # Assert
        assert [entry.name for entry in removed] == [account.name]
        assert removed[0].expired is True
        assert await store.list() == []

    async def test_delete_by_hash_list(self, make_account: MakeAccount) -> None:
        """Given a list containing hashes, the matching entries are removed."""
        # Arrange
        store = MemoryStore()
        await store.set(make_account("a@bar.com", hash="h:a"))
        await store.set(make_account("b@bar.com", hash="h:b"))
        await store.set(make_account("c@bar.com", hash="h:c"))

        # Act
        removed = await store.delete(["h:a", "test_client:c@bar.com"])

        # Assert
        assert sorted(entry.hash for entry in removed) == ["h:a", "h:c"]
        assert [entry.hash for entry in await store.list()] == ["h:b"]

    async def test_delete_respects_base_url(self, make_account: MakeAccount) -> None:
        """Given a base URL, only that server's entry is removed."""
        # Arrange
        store = MemoryStore()
        await store.set(make_account(base_url="https://login.example.com"))
        await store.set(make_account(base_url="https://login.other.com"))

        # Act
        removed = await store.delete("test_client:foo@bar.com", "https://login.other.com")

        # Assert
        assert [entry.auth.base_url for entry in removed] == ["https://login.other.com"]
        assert [entry.auth.base_url for entry in await store.list()] == ["https://login.example.com"]

    async def test_delete_unknown_returns_empty(self) -> None:
        """Given an unknown account, delete returns an empty list."""
        assert await MemoryStore().delete("nobody") == []

    async def test_clear_all(self, make_account: MakeAccount) -> None:
        """Given several entries, clear removes and returns all of them."""
        # Arrange
        store = MemoryStore()
        await store.set(make_account("a@bar.com"))
        await store.set(make_account("b@bar.com"))

        # Act
        removed = await store.clear()

        # Assert
        assert len(removed) == 2
        assert all(entry.expired for entry in removed)
        assert await store.list() == []

    async def test_clear_by_base_url(self, make_account: MakeAccount) -> None:
        """Given a base URL, clear only removes that server's entries."""
        # Arrange
        store = MemoryStore()
        await store.set(make_account("a@bar.com", base_url="https://login.example.com"))
        await store.set(make_account("b@bar.com", base_url="https://login.other.com"))

        # Act
        removed = await store.clear("https://login.example.com")

        # Assert
        assert [entry.name for entry in removed] == ["test_client:a@bar.com"]
        assert len(await store.list()) == 1
