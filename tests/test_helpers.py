"""Tests for request building helpers, endpoints and environments."""

from __future__ import annotations

import pytest

from platform_auth.endpoints import get_endpoints
from platform_auth.environments import ENVIRONMENTS, resolve_environment
from platform_auth.exceptions import InvalidParameterError, InvalidValueError, MissingRequiredParameterError
from platform_auth.utils.helpers import create_url, mask_form, prepare_form, to_snake_case


# ============================================================================
# Tests: Form and URL helpers
# ============================================================================


class TestPrepareForm:
    """Tests for form body construction."""

    @pytest.mark.parametrize(
        "key,expected",
        [
            ("clientId", "client_id"),
            ("redirectUri", "redirect_uri"),
            ("client_id", "client_id"),
            ("scope", "scope"),
        ],
    )
    def test_to_snake_case(self, key: str, expected: str) -> None:
        """Given camelCase or snake_case keys, produces snake_case."""
        assert to_snake_case(key) == expected

    def test_keys_sorted_and_snake_cased(self) -> None:
        """Given unordered camelCase keys, form keys are snake_case and sorted."""
        # Act
        form = prepare_form({"scope": "openid", "clientId": "abc", "grantType": "password"})

        # Assert
        assert list(form) == ["client_id", "grant_type", "scope"]

    def test_none_values_dropped_and_values_stringified(self) -> None:
        """Given None and non-string values, None is dropped and the rest become strings."""
        # Act
        form = prepare_form({"redirect_uri": None, "expires": 10})

        # Assert
        assert form == {"expires": "10"}


class TestCreateUrl:
    """Tests for URL query construction."""

    def test_appends_query(self) -> None:
        """Given a bare URL, params are appended after '?'."""
        assert create_url("https://x.test/auth", {"clientId": "a b"}) == "https://x.test/auth?client_id=a+b"

    def test_extends_existing_query(self) -> None:
        """Given a URL with a query string, params are appended after '&'."""
        assert create_url("https://x.test/auth?a=1", {"b": "2"}) == "https://x.test/auth?a=1&b=2"

    def test_no_params_returns_url(self) -> None:
        """Given no params, the URL is returned unchanged."""
        assert create_url("https://x.test/auth", {}) == "https://x.test/auth"


def test_mask_form_hides_secrets() -> None:
    """Given a form with secret fields, their values are masked."""
    # Act
    masked = mask_form({"password": "hunter2", "username": "foo", "refresh_token": "abc"})

    # Assert
    assert masked == {"password": "********", "username": "foo", "refresh_token": "********"}


# ============================================================================
# Tests: Endpoints
# ============================================================================


class TestGetEndpoints:
    """Tests for endpoint resolution."""

    def test_builds_all_endpoints(self) -> None:
        """Given base URL and realm, all endpoints are derived from them."""
        # Act
        endpoints = get_endpoints("https://login.example.com/", "Broker")

        # Assert
        oidc = "https://login.example.com/auth/realms/Broker/protocol/openid-connect"
        assert endpoints == {
            "auth": f"{oidc}/auth",
            "certs": f"{oidc}/certs",
            "logout": f"{oidc}/logout",
            "token": f"{oidc}/token",
            "userinfo": f"{oidc}/userinfo",
            "well_known": "https://login.example.com/auth/realms/Broker/.well-known/openid-configuration",
        }

    @pytest.mark.parametrize("base_url,realm", [(None, "Broker"), ("", "Broker"), ("https://x", ""), ("https://x", None)])
    def test_missing_values_raise(self, base_url: str | None, realm: str | None) -> None:
        """Given an empty base URL or realm, raises MissingRequiredParameterError."""
        with pytest.raises(MissingRequiredParameterError):
            get_endpoints(base_url, realm)

    def test_non_string_realm_raises(self) -> None:
        """Given a non-string realm, raises InvalidParameterError."""
        with pytest.raises(InvalidParameterError):
            get_endpoints("https://x", 123)  # type: ignore[arg-type]


# ============================================================================
# Tests: Environments
# ============================================================================


class TestResolveEnvironment:
    """Tests for environment lookup."""

    def test_default_is_prod(self) -> None:
        """Given no environment, resolves prod."""
        assert resolve_environment() == ENVIRONMENTS["prod"]

    @pytest.mark.parametrize("alias", ["dev", "test", "preprod", "staging"])
    def test_staging_aliases(self, alias: str) -> None:
        """Given a staging alias, resolves staging."""
        env = resolve_environment(alias)

        assert env.name == "staging"
        assert env.base_url == "https://login.axwaytest.net"
        assert env.realm == "Broker"

    def test_production_alias(self) -> None:
        """Given "production", resolves prod."""
        assert resolve_environment("production").base_url == "https://login.axway.com"

    def test_unknown_env_raises(self) -> None:
        """Given an unknown environment name, raises InvalidValueError."""
        with pytest.raises(InvalidValueError, match='Invalid environment "mars"'):
            resolve_environment("mars")
