"""Account data model.

An Account is one persisted authenticated session: the tokens returned by the
token endpoint, their absolute expiry times, and the identity extracted from
the token payload and the userinfo endpoint.

All expiry values are absolute epoch milliseconds, never durations.
"""

from __future__ import annotations

__all__ = [
    "Account",
    "AccountAuth",
    "AccountOrg",
    "AccountTokens",
    "AccountUser",
    "TokenExpiry",
]

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from platform_auth.utils.helpers import now_ms


class TokenExpiry(BaseModel):
    """Absolute expiry times (epoch ms) of the access and refresh tokens."""

    access: int
    refresh: int | None = None


class AccountTokens(BaseModel):
    """Raw token endpoint response.

    Unknown fields returned by the server (token_type, scope, ...) are kept.
    """

    model_config = ConfigDict(extra="allow")

    access_token: str
    refresh_token: str | None = None
    id_token: str | None = None


class AccountAuth(BaseModel):
    """How an account authenticated and the tokens it holds.

    Attributes:
        authenticator: Grant name ("PKCE", "OwnerPassword", "ClientSecret", "SignedJWT").
        base_url: Login server the tokens were issued by.
        client_id: OAuth client id.
        realm: Realm the tokens belong to.
        env: Environment name the account was created under.
        expires: Absolute expiry times.
        tokens: Token endpoint response.
        client_secret, username, password, secret: Authenticator
            secrets, only present when persist_secrets is enabled.
    """

    authenticator: str
    base_url: str
    client_id: str
    realm: str
    env: str | None = None
    expires: TokenExpiry
    tokens: AccountTokens

    client_secret: str | None = None
    username: str | None = None
    password: str | None = None
    secret: str | None = None

    _revoked: bool = PrivateAttr(default=False)

    @property
    def expired(self) -> bool:
        """True once the access token has expired or the account was revoked."""
        return self._revoked or self.expires.access < now_ms()

    @property
    def refreshable(self) -> bool:
        """True if a refresh token exists and has not expired."""
        return bool(
            self.tokens.refresh_token and self.expires.refresh is not None and self.expires.refresh > now_ms()
        )

    def mark_expired(self) -> None:
        """Flag the account as expired regardless of token lifetimes."""
        self._revoked = True


class AccountUser(BaseModel):
    """Best-effort user profile, enriched from the userinfo endpoint."""

    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    guid: str | None = None
    axway_id: str | None = None
    organization: str | None = None


class AccountOrg(BaseModel):
    """Organization context from the token payload or userinfo."""

    model_config = ConfigDict(extra="allow")

    name: str | None = None
    guid: str | None = None
    org_id: str | int | None = None


class Account(BaseModel):
    """A persisted authenticated session."""

    auth: AccountAuth
    hash: str
    name: str
    user: AccountUser = Field(default_factory=AccountUser)
    org: AccountOrg | None = None
    orgs: list[AccountOrg] = Field(default_factory=list)

    @property
    def expired(self) -> bool:
        return self.auth.expired

    @property
    def dead(self) -> bool:
        """True if neither the access nor the refresh token is usable."""
        return self.auth.expired and not self.auth.refreshable
