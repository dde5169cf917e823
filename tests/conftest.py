"""Shared fixtures for platform-auth tests.

Provides:
- An in-memory keyring backend (the system keyring is never touched)
- A fake OIDC login server served through httpx.MockTransport
- Factories for signed-looking tokens and stored accounts
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any
from urllib.parse import parse_qs, parse_qsl, urlparse

import httpx
import jwt
import keyring
import pytest
from keyring.backend import KeyringBackend
from keyring.backends.fail import Keyring as FailKeyring
from keyring.errors import PasswordDeleteError

from platform_auth.models import Account, AccountAuth, AccountTokens, AccountUser, TokenExpiry
from platform_auth.utils.helpers import now_ms

BASE_URL = "https://login.example.com"
PLATFORM_URL = "https://platform.example.com"
REALM = "Broker"
CLIENT_ID = "test_client"

# Tokens are decoded without verification, any HMAC key will do
_TOKEN_SIGNING_KEY = "platform-auth-test-token-signing-key-0123456789"


# ============================================================================
# Keyring
# ============================================================================


class InMemoryKeyring(KeyringBackend):
    """Keyring backend keeping passwords in a dict."""

    priority = 1

    def __init__(self) -> None:
        super().__init__()
        self.passwords: dict[tuple[str, str], str] = {}

    def get_password(self, service: str, username: str) -> str | None:
        return self.passwords.get((service, username))

    def set_password(self, service: str, username: str, password: str) -> None:
        self.passwords[(service, username)] = password

    def delete_password(self, service: str, username: str) -> None:
        try:
            del self.passwords[(service, username)]
        except KeyError:
            raise PasswordDeleteError("Password not found") from None


@pytest.fixture(autouse=True)
def no_system_keyring() -> Any:
    """Every test starts with keyring's "fail" backend selected."""
    previous = keyring.get_keyring()
    keyring.set_keyring(FailKeyring())
    yield
    keyring.set_keyring(previous)


@pytest.fixture
def memory_keyring(no_system_keyring: Any) -> InMemoryKeyring:
    """Usable in-memory keyring backend."""
    backend = InMemoryKeyring()
    keyring.set_keyring(backend)
    return backend


# ============================================================================
# Tokens and accounts
# ============================================================================


def _make_token(email: str | None = "foo@bar.com", org_id: int | None = 12345, **claims: Any) -> str:
    payload: dict[str, Any] = {"sub": "user-1", **claims}
    if email is not None:
        payload["email"] = email
    if org_id is not None:
        payload["orgId"] = org_id
    return jwt.encode(payload, _TOKEN_SIGNING_KEY, algorithm="HS256")


@pytest.fixture
def make_token() -> Callable[..., str]:
    """Factory for unsigned-in-practice id/access tokens carrying email and orgId."""
    return _make_token


@pytest.fixture
def make_account() -> Callable[..., Account]:
    """Factory for stored accounts with expiries relative to now (seconds)."""

    def _make(
        email: str = "foo@bar.com",
        *,
        access_in: float = 1800,
        refresh_in: float | None = 3600,
        base_url: str = BASE_URL,
        env: str | None = "prod",
        id_token: bool = True,
        hash: str | None = None,
    ) -> Account:
        now = now_ms()
        token = _make_token(email)
        return Account(
            auth=AccountAuth(
                authenticator="OwnerPassword",
                base_url=base_url,
                client_id=CLIENT_ID,
                realm=REALM,
                env=env,
                expires=TokenExpiry(
                    access=now + int(access_in * 1000),
                    refresh=now + int(refresh_in * 1000) if refresh_in is not None else None,
                ),
                tokens=AccountTokens(
                    access_token=token,
                    refresh_token="refresh-0" if refresh_in is not None else None,
                    id_token=token if id_token else None,
                ),
            ),
            hash=hash or f"{CLIENT_ID}:{email.replace('@', '_')}",
            name=f"{CLIENT_ID}:{email}",
            user=AccountUser(email=email),
        )

    return _make


# ============================================================================
# Fake login server
# ============================================================================


class FakeLoginServer:
    """OIDC realm answering token, userinfo, logout and discovery requests.

    Attributes tweak the responses; every request is recorded.
    """

    def __init__(self, base_url: str = BASE_URL, realm: str = REALM) -> None:
        self.prefix = f"{base_url}/auth/realms/{realm}"
        self.requests: list[httpx.Request] = []

        self.email: str | None = "foo@bar.com"
        self.org_id: int | None = 12345
        self.expires_in = 1800
        self.refresh_expires_in = 3600

        # (status, json body) returned by the token endpoint instead of tokens
        self.token_error: tuple[int, Any] | None = None
        self.token_raw_body: str | None = None
        self.userinfo_status = 200
        self.logout_status = 200
        self.well_known_status = 200
        self._issued = 0

    @property
    def token_requests(self) -> list[dict[str, str]]:
        """Form bodies sent to the token endpoint."""
        return [
            dict(parse_qsl(request.content.decode("utf-8")))
            for request in self.requests
            if request.url.path.endswith("/protocol/openid-connect/token")
        ]

    def requests_to(self, suffix: str) -> list[httpx.Request]:
        return [request for request in self.requests if request.url.path.endswith(suffix)]

    def issue_tokens(self) -> dict[str, Any]:
        self._issued += 1
        token = _make_token(self.email, self.org_id, jti=f"token-{self._issued}")
        return {
            "access_token": token,
            "expires_in": self.expires_in,
            "id_token": token,
            "refresh_expires_in": self.refresh_expires_in,
            "refresh_token": f"refresh-{self._issued}",
            "token_type": "Bearer",
        }

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path.endswith("/protocol/openid-connect/token"):
            if self.token_error is not None:
                status, body = self.token_error
                return httpx.Response(status, json=body)
            if self.token_raw_body is not None:
                return httpx.Response(200, text=self.token_raw_body)
            return httpx.Response(200, json=self.issue_tokens())

        if path.endswith("/protocol/openid-connect/userinfo"):
            if self.userinfo_status != 200:
                return httpx.Response(self.userinfo_status, json={"error": "invalid_token"})
            return httpx.Response(
                200,
                json={
                    "email": self.email,
                    "given_name": "Foo",
                    "family_name": "Bar",
                    "guid": "guid-1",
                    "org_name": "Acme",
                    "org_guid": "org-guid-1",
                },
            )

        if path.endswith("/protocol/openid-connect/logout"):
            return httpx.Response(self.logout_status)

        if path.endswith("/.well-known/openid-configuration"):
            if self.well_known_status != 200:
                return httpx.Response(self.well_known_status)
            return httpx.Response(
                200,
                json={
                    "issuer": self.prefix,
                    "token_endpoint": f"{self.prefix}/protocol/openid-connect/token",
                },
            )

        return httpx.Response(404)


@pytest.fixture
def login_server() -> FakeLoginServer:
    return FakeLoginServer()


@pytest.fixture
async def http_client(login_server: FakeLoginServer) -> AsyncIterator[httpx.AsyncClient]:
    """httpx client routed to the fake login server."""
    async with httpx.AsyncClient(transport=httpx.MockTransport(login_server.handle)) as client:
        yield client


@pytest.fixture
async def browser() -> AsyncIterator[httpx.AsyncClient]:
    """Real HTTP client standing in for the user's browser (no redirects followed)."""
    async with httpx.AsyncClient(trust_env=False, follow_redirects=False, timeout=5.0) as client:
        yield client


async def _complete_browser_login(
    browser: httpx.AsyncClient, auth_url: str, code: str = "auth-code-1"
) -> list[httpx.Response]:
    """Follow an interactive login the way the browser would.

    Hits the redirect URI with an auth code, then the org-selected callback the
    platform would redirect back to.
    """
    redirect_uri = parse_qs(urlparse(auth_url).query)["redirect_uri"][0]
    code_response = await browser.get(redirect_uri, params={"code": code})
    if code_response.status_code != 302:
        return [code_response]

    location = code_response.headers["location"]
    org_url = parse_qs(location.split("?", 1)[1])["redirect"][0]
    org_response = await browser.get(org_url)
    return [code_response, org_response]


@pytest.fixture
def complete_browser_login() -> Callable[..., Awaitable[list[httpx.Response]]]:
    return _complete_browser_login
