"""Tests for AuthOptions and environment variable loading."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from platform_auth.config import AuthOptions, load_auth_options
from platform_auth.constants import DEFAULT_TOKEN_STORE_DIR


class TestAuthOptions:
    """Tests for AuthOptions validation and merging."""

    def test_defaults(self) -> None:
        """Given no arguments, defaults match the documented values."""
        # Act
        options = AuthOptions()

        # Assert
        assert options.env is None
        assert options.scope == "openid"
        assert options.response_type == "code"
        assert options.access_type == "offline"
        assert options.token_store_type == "auto"
        assert options.interactive_login_timeout == 120
        assert options.persist_secrets is None

    def test_unknown_field_rejected(self) -> None:
        """Given an unknown option, raises ValidationError."""
        with pytest.raises(ValidationError):
            AuthOptions(client_key="nope")  # type: ignore[call-arg]

    @pytest.mark.parametrize(
        "field,value",
        [
            ("token_refresh_threshold", -1),
            ("interactive_login_timeout", 0),
            ("token_store_type", "cloud"),
        ],
    )
    def test_invalid_values_rejected(self, field: str, value: object) -> None:
        """Given out-of-range or unsupported values, raises ValidationError."""
        with pytest.raises(ValidationError):
            AuthOptions(**{field: value})

    def test_merged_applies_non_none_overrides(self) -> None:
        """Given overrides, merged() returns a copy with only non-None values applied."""
        # Arrange
        options = AuthOptions(client_id="my-cli", env="staging")

        # Act
        merged = options.merged(env=None, username="foo", password="bar")

        # Assert
        assert merged.env == "staging"
        assert merged.username == "foo"
        assert options.username is None

    def test_merged_validates_overrides(self) -> None:
        """Given an unknown override, merged() raises ValidationError."""
        with pytest.raises(ValidationError):
            AuthOptions().merged(bogus=True)


class TestLoadAuthOptions:
    """Tests for PLATFORM_AUTH_* environment variables."""

    def test_reads_environment(self) -> None:
        """Given PLATFORM_AUTH_* variables, their values populate the options."""
        # Arrange
        environ = {
            "PLATFORM_AUTH_ENV": "staging",
            "PLATFORM_AUTH_CLIENT_ID": "env-cli",
            "PLATFORM_AUTH_TOKEN_STORE_TYPE": "file",
            "PLATFORM_AUTH_TOKEN_STORE_DIR": "/tmp/store",
            "PLATFORM_AUTH_SERVER_PORT": "8080",
            "UNRELATED": "x",
        }

        # Act
        options = load_auth_options(environ)

        # Assert
        assert options.env == "staging"
        assert options.client_id == "env-cli"
        assert options.token_store_type == "file"
        assert options.token_store_dir == "/tmp/store"
        assert options.server_port == "8080"

    def test_overrides_win(self) -> None:
        """Given an override for a variable that is also set, the override wins."""
        options = load_auth_options({"PLATFORM_AUTH_CLIENT_ID": "env-cli"}, client_id="arg-cli")

        assert options.client_id == "arg-cli"

    def test_default_token_store_dir(self) -> None:
        """Given no directory variable, the per-user config directory is used."""
        assert load_auth_options({}).token_store_dir == DEFAULT_TOKEN_STORE_DIR

    def test_invalid_store_type_rejected(self) -> None:
        """Given an unsupported store type in the environment, raises ValidationError."""
        with pytest.raises(ValidationError):
            load_auth_options({"PLATFORM_AUTH_TOKEN_STORE_TYPE": "cloud"})
