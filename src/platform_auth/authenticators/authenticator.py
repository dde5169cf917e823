"""Shared OAuth/OIDC plumbing for every grant strategy.

The Authenticator resolves endpoints, computes the session hash, exchanges
codes, credentials and refresh tokens at the token endpoint, enriches the
resulting Account from the userinfo endpoint and drives the interactive
browser login through a CallbackServer.

Token payloads are decoded without signature verification: the tokens come
straight from the token endpoint over TLS and are only read for the email
and org id.

Usage:
    authenticator = Authenticator(OwnerPassword("alice", "secret"), client_id="my-cli")
    account = await authenticator.login()

    # Browser login without opening a browser
    manual = await Authenticator(client_id="my-cli").login(manual=True)
    print(manual.url)
    account = await manual.promise
"""

from __future__ import annotations

__all__ = [
    "Authenticator",
    "AuthenticatorConfig",
    "ManualLogin",
]

import asyncio
import hashlib
import inspect
import json
import re
import webbrowser
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Mapping

import httpx
import jwt

from platform_auth.authenticators.grant import Grant
from platform_auth.authenticators.pkce import PKCE
from platform_auth.callback_server import CallbackReply, CallbackServer, parse_server_port, render_message
from platform_auth.constants import (
    CALLBACK_HOST,
    DEFAULT_ACCESS_TYPE,
    DEFAULT_CALLBACK_PORT,
    DEFAULT_CALLBACK_TIMEOUT_SECONDS,
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
    DEFAULT_RESPONSE_TYPE,
    DEFAULT_SCOPE,
    ENDPOINT_NAMES,
)
from platform_auth.endpoints import get_endpoints
from platform_auth.environments import resolve_environment
from platform_auth.exceptions import (
    AuthFailedError,
    InvalidArgumentError,
    InvalidGrantError,
    InvalidParameterError,
    InvalidValueError,
    MissingAuthCodeError,
    MissingRequiredParameterError,
)
from platform_auth.models import Account, AccountAuth, AccountOrg, AccountTokens, AccountUser, TokenExpiry
from platform_auth.stores.token_store import TokenStore
from platform_auth.utils.helpers import create_url, mask_form, now_ms, prepare_form
from platform_auth.utils.http import borrow_client
from platform_auth.utils.logging.logger import get_logger

if TYPE_CHECKING:
    from starlette.requests import Request

logger = get_logger("authenticator")

# AccountAuth fields holding grant secrets (persist_secrets)
_SECRET_FIELDS = ("client_secret", "username", "password", "secret")


@dataclass(frozen=True)
class AuthenticatorConfig:
    """Resolved, immutable authenticator settings."""

    client_id: str
    realm: str
    base_url: str
    env: str
    platform_url: str
    endpoints: Mapping[str, str]
    scope: str = DEFAULT_SCOPE
    response_type: str = DEFAULT_RESPONSE_TYPE
    access_type: str = DEFAULT_ACCESS_TYPE


@dataclass
class ManualLogin:
    """Pending browser login returned in manual mode.

    Attributes:
        url: Authorization URL to open in a browser.
        promise: Task resolving with the Account once the redirect arrives.
        cancel: Coroutine function aborting the login; promise then fails
            with AuthCancelledError.
    """

    url: str
    promise: asyncio.Task[Account]
    cancel: Callable[[], Awaitable[None]] = field(repr=False)


def _require_string(value: Any, label: str, *, non_empty: bool = False) -> str:
    if not isinstance(value, str) or (non_empty and not value):
        qualifier = "a non-empty string" if non_empty else "a string"
        raise InvalidParameterError(f"Expected {label} to be {qualifier}")
    return value


class Authenticator:
    """Authenticates against an OIDC realm using a grant strategy.

    Args:
        grant: Grant strategy (default: PKCE browser login).
        client_id: OAuth client id.
        realm: Realm name (default: the environment's realm).
        base_url: Login server URL (default: the environment's).
        env: Environment name or alias (default "prod").
        platform_url: Platform web UI URL (default: the environment's).
        endpoints: Per-endpoint URL overrides.
        scope, response_type, access_type: Authorization request parameters.
        token_store: Store receiving accounts after every token exchange.
        http_client: Shared httpx.AsyncClient. When omitted, a client is
            created per request.
        request_timeout: Timeout for requests made with an own client.
        persist_secrets: Save the grant's secrets on stored accounts.
        server_host: Interface the login callback server binds.
        server_port: Preferred callback server port (1024-65535).

    Raises:
        MissingRequiredParameterError: If no base URL can be resolved.
        InvalidParameterError: If an option has the wrong type.
        InvalidRangeError: If server_port is outside 1024-65535.
        InvalidValueError: If env or an endpoint name is unknown.
    """

    def __init__(
        self,
        grant: Grant | None = None,
        *,
        client_id: str,
        realm: str | None = None,
        base_url: str | None = None,
        env: str | None = None,
        platform_url: str | None = None,
        endpoints: Mapping[str, str] | None = None,
        scope: str = DEFAULT_SCOPE,
        response_type: str = DEFAULT_RESPONSE_TYPE,
        access_type: str = DEFAULT_ACCESS_TYPE,
        token_store: TokenStore | None = None,
        http_client: httpx.AsyncClient | None = None,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
        persist_secrets: bool = False,
        server_host: str = CALLBACK_HOST,
        server_port: int | str | None = None,
    ) -> None:
        environment = resolve_environment(env)

        if base_url is None:
            base_url = environment.base_url
        if not isinstance(base_url, str):
            raise InvalidParameterError("Expected base URL to be a string")
        base_url = base_url.rstrip("/")
        if not base_url:
            raise MissingRequiredParameterError("Invalid base URL: env or base_url required")

        _require_string(client_id, "client id", non_empty=True)
        realm = _require_string(environment.realm if realm is None else realm, "realm", non_empty=True)
        _require_string(scope, "scope")
        _require_string(response_type, "response type")
        _require_string(access_type, "access type")

        resolved_endpoints = get_endpoints(base_url, realm)
        if endpoints is not None:
            if not isinstance(endpoints, Mapping):
                raise InvalidParameterError("Expected endpoints to be a mapping of endpoint names to URLs")
            for name, url in endpoints.items():
                if name not in ENDPOINT_NAMES:
                    raise InvalidValueError(f'Invalid endpoint "{name}"')
                resolved_endpoints[name] = _require_string(url, f'"{name}" endpoint URL', non_empty=True)

        if token_store is not None and not isinstance(token_store, TokenStore):
            raise InvalidParameterError("Expected the token store to be a TokenStore instance")

        self.grant = grant if grant is not None else PKCE()
        self.config = AuthenticatorConfig(
            client_id=client_id,
            realm=realm,
            base_url=base_url,
            env=environment.name,
            platform_url=(platform_url or environment.platform_url).rstrip("/"),
            endpoints=resolved_endpoints,
            scope=scope,
            response_type=response_type,
            access_type=access_type,
        )
        self.token_store = token_store
        self.persist_secrets = persist_secrets
        self._http_client = http_client
        self._request_timeout = request_timeout
        self.server_host = _require_string(server_host, "server host", non_empty=True)
        self.server_port = DEFAULT_CALLBACK_PORT if server_port is None else parse_server_port(server_port)

    def __repr__(self) -> str:
        return f"Authenticator(grant={self.grant.name!r}, client_id={self.config.client_id!r})"

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    @property
    def name(self) -> str:
        """Grant strategy name."""
        return self.grant.name

    @property
    def interactive(self) -> bool:
        return self.grant.interactive

    @property
    def hash(self) -> str:
        """Session identity: sanitized client id plus a digest of the credentials.

        Stable for identical settings. Differs whenever the base URL, realm or
        grant credentials (username, client secret, signing key) differ.
        """
        client_id = re.sub(r"_+", "_", re.sub(r"\s", "_", self.config.client_id))
        payload = json.dumps(
            {"base_url": self.config.base_url, "realm": self.config.realm, **self.grant.hash_params()},
            separators=(",", ":"),
        )
        digest = hashlib.md5(payload.encode("utf-8"), usedforsecurity=False).hexdigest()
        return f"{client_id}:{digest}"

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    async def _request_tokens(self, params: Mapping[str, Any]) -> dict[str, Any]:
        url = self.config.endpoints["token"]
        form = prepare_form(params)
        logger.debug(
            {
                "event": "token_request",
                "message": f"Fetching token: {url}",
                "url": url,
                "grant_type": form.get("grant_type"),
                "form": mask_form(form),
            }
        )

        try:
            async with borrow_client(self._http_client, self._request_timeout) as client:
                response = await client.post(url, data=form, headers={"Accept": "application/json"})
        except httpx.HTTPError as e:
            raise AuthFailedError(f"Authentication failed: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = None

        if response.is_error:
            error = body.get("error") if isinstance(body, dict) else None
            description = (body.get("error_description") if isinstance(body, dict) else None) or error
            logger.debug(
                {
                    "event": "token_request_failed",
                    "message": f"Token request failed with status {response.status_code}: {description}",
                    "status_code": response.status_code,
                    "error": error,
                }
            )
            if error == "invalid_grant":
                raise InvalidGrantError(
                    f"Invalid grant: {description or 'token rejected'}",
                    status_code=response.status_code,
                    body=body,
                )
            raise AuthFailedError(
                f"Authentication failed: {description or response.reason_phrase or response.status_code}",
                status_code=response.status_code,
                body=body,
            )

        if not isinstance(body, dict):
            raise AuthFailedError(
                "Authentication failed: Invalid server response",
                status_code=response.status_code,
                body=body,
            )
        return body

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    async def get_token(
        self,
        code: str | None = None,
        redirect_uri: str | None = None,
        *,
        account: Account | None = None,
        force_refresh: bool = False,
    ) -> Account:
        """Obtain tokens and return the resulting Account.

        Without a code, known tokens are taken from ``account`` or the token
        store entry with this authenticator's hash. A still-valid access token
        is returned as is (unless force_refresh), a refreshable one is
        refreshed. Otherwise the grant's primary token request is made.

        Args:
            code: Authorization code from the browser redirect.
            redirect_uri: Redirect URI the code was issued for.
            account: Known account to refresh from.
            force_refresh: Refresh even if the access token is still valid.

        Returns:
            The new (or still valid) Account, saved to the token store.

        Raises:
            MissingAuthCodeError: If an interactive grant needs a code.
            InvalidGrantError: If the server rejected the refresh token or code.
            AuthFailedError: If the request failed or the response is invalid.
        """
        known = account
        if code is None and known is None and self.token_store is not None:
            for entry in await self.token_store.list():
                if entry.hash == self.hash:
                    known = entry
                    break

        if code is None and known is not None and not force_refresh and not known.auth.expired:
            logger.debug(
                {
                    "event": "token_reused",
                    "message": f"Found valid access token for {known.name}",
                    "account": known.name,
                }
            )
            return known

        params: dict[str, Any]
        renewing: Account | None = None
        if code is None and known is not None and known.auth.refreshable:
            renewing = known
            logger.debug(
                {
                    "event": "token_refresh",
                    "message": f"Refreshing access token for {known.name}",
                    "account": known.name,
                }
            )
            params = {
                "client_id": self.config.client_id,
                "grant_type": "refresh_token",
                "refresh_token": known.auth.tokens.refresh_token,
                **self.grant.refresh_token_params(self.config),
            }
        else:
            params = {
                "client_id": self.config.client_id,
                "scope": self.config.scope,
                **self.grant.token_params(self.config),
            }
            if self.interactive:
                if not code or not isinstance(code, str):
                    raise MissingAuthCodeError("Expected code for interactive authentication to be a non-empty string")
                params["code"] = code
                params["redirect_uri"] = redirect_uri

        tokens = await self._request_tokens(params)
        result = self._create_account(tokens, renewing)
        result = await self.get_info(result)

        if self.token_store is not None:
            await self.token_store.set(result)
        return result

    def _create_account(self, tokens: dict[str, Any], renewing: Account | None = None) -> Account:
        """Build an Account from a token endpoint response.

        A refresh (``renewing``) keeps the hash, grant name and persisted
        secrets of the session it renews, so store lookups keep finding it
        even when this authenticator was rebuilt with a different grant.
        """
        token = tokens.get("id_token") or tokens.get("access_token")
        try:
            payload = jwt.decode(token, options={"verify_signature": False})
        except (jwt.PyJWTError, TypeError, ValueError) as e:
            raise AuthFailedError("Authentication failed: Invalid server response", body=tokens) from e

        now = now_ms()
        email = payload.get("email")
        org_id = payload.get("orgId")
        client_id = self.config.client_id

        try:
            refresh_expires_in = tokens.get("refresh_expires_in")
            expires = TokenExpiry(
                access=int(tokens.get("expires_in") or 0) * 1000 + now,
                refresh=(
                    int(refresh_expires_in) * 1000 + now
                    if tokens.get("refresh_token") and refresh_expires_in
                    else None
                ),
            )
            secrets = self.grant.authenticator_params() if self.persist_secrets else {}
            if renewing is not None:
                secrets = {**renewing.auth.model_dump(include=set(_SECRET_FIELDS), exclude_none=True), **secrets}
            auth = AccountAuth(
                authenticator=renewing.auth.authenticator if renewing is not None else self.grant.name,
                base_url=self.config.base_url,
                client_id=client_id,
                realm=self.config.realm,
                env=self.config.env,
                expires=expires,
                tokens=AccountTokens.model_validate(tokens),
                **secrets,
            )
        except (TypeError, ValueError) as e:
            raise AuthFailedError("Authentication failed: Invalid server response", body=tokens) from e

        account_hash = renewing.hash if renewing is not None else self.hash
        if email:
            name = f"{client_id}:{email}"
        else:
            name = renewing.name if renewing is not None else account_hash
        org = AccountOrg(name=str(org_id), org_id=org_id) if org_id else None

        return Account(
            auth=auth,
            hash=account_hash,
            name=name,
            org=org,
            orgs=[org] if org is not None else [],
            user=AccountUser(email=email),
        )

    # ------------------------------------------------------------------
    # User info
    # ------------------------------------------------------------------

    async def _fetch_user_info(self, account: Account) -> dict[str, Any]:
        url = self.config.endpoints["userinfo"]
        try:
            async with borrow_client(self._http_client, self._request_timeout) as client:
                response = await client.get(
                    url,
                    headers={
                        "Accept": "application/json",
                        "Authorization": f"Bearer {account.auth.tokens.access_token}",
                    },
                )
        except httpx.HTTPError as e:
            raise AuthFailedError(f"Failed to get user info: {e}") from e

        if response.is_error:
            raise AuthFailedError(
                f"Failed to get user info (status {response.status_code})",
                status_code=response.status_code,
            )
        try:
            info = response.json()
        except ValueError as e:
            raise AuthFailedError("Failed to get user info: Invalid server response") from e
        if not isinstance(info, dict):
            raise AuthFailedError("Failed to get user info: Invalid server response")
        return info

    async def get_info(self, account: Account, *, strict: bool = False) -> Account:
        """Enrich an account's user and org from the userinfo endpoint.

        Best-effort: failures are logged and the account is returned as is.

        Args:
            account: Account whose access token is used.
            strict: Raise instead of swallowing failures.

        Returns:
            A copy of the account with user/org details filled in.

        Raises:
            AuthFailedError: Only with strict=True, carrying the HTTP status.
        """
        try:
            info = await self._fetch_user_info(account)
        except AuthFailedError as e:
            if strict:
                raise
            logger.warning(
                {
                    "event": "user_info_failed",
                    "message": f"Fetch user info failed: {e}",
                    "account": account.name,
                    "status_code": e.status_code,
                }
            )
            return account

        user_updates = {
            "email": info.get("email"),
            "first_name": info.get("given_name"),
            "last_name": info.get("family_name"),
            "guid": info.get("guid") or info.get("user_guid"),
        }
        user = account.user.model_copy(update={k: v for k, v in user_updates.items() if v is not None})

        org = account.org
        orgs = account.orgs
        org_updates = {"name": info.get("org_name"), "guid": info.get("org_guid")}
        org_updates = {k: v for k, v in org_updates.items() if v is not None}
        if org_updates:
            org = (org or AccountOrg()).model_copy(update=org_updates)
            if account.org is None:
                orgs = [*orgs, org]
            else:
                orgs = [org if entry == account.org else entry for entry in orgs]

        return account.model_copy(update={"user": user, "org": org, "orgs": orgs})

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    async def login(
        self,
        *,
        code: str | None = None,
        manual: bool = False,
        timeout: float | None = None,
        on_open_browser: Callable[[str], Any] | None = None,
        callback_server: CallbackServer | None = None,
    ) -> Account | ManualLogin:
        """Authenticate and return the Account.

        Non-interactive grants (and calls with an explicit code) exchange
        tokens directly. Interactive grants run the browser flow:

        1. Register a code callback and an org-selected callback.
        2. Send the browser to the authorization URL (or, in manual mode,
           return it to the caller).
        3. The code callback exchanges the code, then redirects the browser
           to the platform's org selection, which returns to the
           org-selected callback.

        Args:
            code: Authorization code obtained out of band.
            manual: Return a ManualLogin instead of opening a browser.
            timeout: Seconds to wait for each redirect.
            on_open_browser: Called with the URL before the browser opens.
            callback_server: Server to register callbacks on. A private one
                is created when omitted.

        Returns:
            Account, or ManualLogin in manual mode.

        Raises:
            InvalidArgumentError: If manual mode is requested for a
                non-interactive grant.
            AuthTimeoutError: If the browser never completed the flow.
            AuthFailedError: If the token exchange failed.
        """
        if manual and not self.interactive:
            raise InvalidArgumentError("Manual mode is only supported with PKCE interactive authentication")

        if not self.interactive or code is not None:
            return await self.get_token(code)

        server = callback_server or CallbackServer(
            host=self.server_host,
            port=self.server_port,
            timeout=timeout or DEFAULT_CALLBACK_TIMEOUT_SECONDS,
        )
        platform_url = self.config.platform_url

        async def on_org_selected(request: Request, reply: CallbackReply) -> None:
            body, media_type = render_message(
                request, "Authorization Successful", "You may close this window and return to the terminal."
            )
            reply.redirect(platform_url, body, media_type)

        org_callback = await server.create_callback(on_org_selected, timeout=timeout)

        async def on_code(request: Request, reply: CallbackReply) -> Account:
            auth_code = request.query_params.get("code")
            if not auth_code:
                raise AuthFailedError("Invalid auth code")

            account = await self.get_token(auth_code, code_callback.url)

            org_callback.start()
            reply.redirect(create_url(f"{platform_url}/#/auth/org.select", {"redirect": org_callback.url}))
            return account

        code_callback = await server.create_callback(on_code, timeout=timeout)

        auth_url = create_url(
            self.config.endpoints["auth"],
            {
                "access_type": self.config.access_type,
                "client_id": self.config.client_id,
                "redirect_uri": code_callback.url,
                "response_type": self.config.response_type,
                "scope": self.config.scope,
                **self.grant.authorization_url_params(self.config),
            },
        )

        async def wait_for_login() -> Account:
            try:
                code_result = await code_callback.start()
                await org_callback.start()
                return code_result.result
            finally:
                await code_callback.cancel()
                await org_callback.cancel()
                await server.stop()

        code_callback.start()
        promise = asyncio.create_task(wait_for_login())

        async def cancel() -> None:
            await code_callback.cancel()
            await org_callback.cancel()

        if manual:
            return ManualLogin(url=auth_url, promise=promise, cancel=cancel)

        if on_open_browser is not None:
            opened = on_open_browser(auth_url)
            if inspect.isawaitable(opened):
                await opened

        logger.info(
            {
                "event": "browser_login",
                "message": f"Opening browser to {auth_url}",
                "url": auth_url,
            }
        )
        try:
            webbrowser.open(auth_url)
        except (OSError, webbrowser.Error) as e:
            logger.warning(
                {
                    "event": "browser_open_failed",
                    "message": f"Could not open browser, visit {auth_url} manually",
                    "error": str(e),
                }
            )

        return await promise
