"""Auth orchestrator.

Wires configuration, a token store, authenticators and the callback server
together and exposes the account lifecycle:

- login(): authenticate and store the account
- find(): load a stored account, refreshing it silently when needed
- list(): stored accounts for the configured environment
- logout(): revoke accounts locally, then best-effort at the server
- server_info(): the realm's OpenID configuration document

Usage:
    async with Auth(AuthOptions(client_id="my-cli", token_store_dir="~/.my-cli")) as auth:
        account = await auth.find("my-cli:alice@example.com")
        if account is None:
            account = await auth.login()
"""

from __future__ import annotations

__all__ = ["Auth"]

from typing import Any, Iterable

import httpx

from platform_auth.authenticators import (
    PKCE,
    Authenticator,
    ClientSecret,
    Grant,
    ManualLogin,
    OwnerPassword,
    SignedJWT,
)
from platform_auth.callback_server import CallbackServer, parse_server_port
from platform_auth.constants import DEFAULT_CALLBACK_PORT
from platform_auth.config import AuthOptions
from platform_auth.endpoints import get_endpoints
from platform_auth.environments import resolve_environment
from platform_auth.exceptions import (
    AuthFailedError,
    InvalidArgumentError,
    InvalidGrantError,
    InvalidParameterError,
    MissingRequiredParameterError,
    SecureStoreUnavailableError,
)
from platform_auth.models import Account
from platform_auth.stores import FileStore, MemoryStore, SecureStore, TokenStore
from platform_auth.utils.helpers import create_url, now_ms
from platform_auth.utils.http import borrow_client
from platform_auth.utils.logging.logger import get_logger

logger = get_logger("auth")

# Account fields that override options when rebuilding an authenticator for a stored account
_ACCOUNT_AUTH_FIELDS: tuple[str, ...] = (
    "base_url",
    "client_id",
    "realm",
    "env",
    "client_secret",
    "username",
    "password",
    "secret",
)


class Auth:
    """Entry point for authenticating and managing stored accounts.

    Args:
        options: Instance defaults. Per-call keyword overrides win over these,
            environment defaults fill in what is left.
        token_store: Explicit store, overriding options.token_store_type.
        http_client: Shared httpx.AsyncClient for all server requests
            (caller-owned). A short-lived client is used per request otherwise.

    Raises:
        InvalidParameterError: If token_store is not a TokenStore, or
            server_port is not a number.
        InvalidRangeError: If server_port is outside 1024-65535.
        SecureStoreUnavailableError: If token_store_type="secure" and no
            keyring is usable.
        MissingRequiredParameterError: If a file-backed store type is pinned
            without token_store_dir.
    """

    def __init__(
        self,
        options: AuthOptions | None = None,
        *,
        token_store: TokenStore | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.options = options or AuthOptions()
        self._http_client = http_client

        if token_store is not None:
            if not isinstance(token_store, TokenStore):
                raise InvalidParameterError("Expected the token store to be a TokenStore instance")
            self.token_store: TokenStore | None = token_store
        else:
            self.token_store = self._create_token_store()

        is_secure = isinstance(self.token_store, SecureStore)
        persist_secrets = self.options.persist_secrets
        self.persist_secrets = is_secure if persist_secrets is None else persist_secrets
        if self.persist_secrets and not is_secure:
            logger.warning(
                {
                    "event": "persist_secrets_insecure",
                    "message": "Persisting secrets is enabled but the token store is not a secure store",
                    "token_store": type(self.token_store).__name__,
                }
            )

        # One listener per Auth instance, up only while a login is waiting
        server_port = self.options.server_port
        self.callback_server = CallbackServer(
            host=self.options.server_host,
            port=DEFAULT_CALLBACK_PORT if server_port is None else parse_server_port(server_port),
            timeout=self.options.interactive_login_timeout,
        )

    async def __aenter__(self) -> Auth:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def close(self) -> None:
        """Stop the callback server, failing any login still waiting."""
        await self.callback_server.stop(force=True)

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def _create_token_store(self) -> TokenStore | None:
        store_type = self.options.token_store_type
        store_dir = self.options.token_store_dir
        threshold = self.options.token_refresh_threshold

        if store_type is None or store_type == "none":
            return None
        if store_type == "memory":
            return MemoryStore(threshold)
        if store_type == "file":
            return FileStore(store_dir, threshold)
        if store_type == "secure":
            return SecureStore(store_dir, self.options.secure_service_name, threshold)

        # auto: secure -> file -> memory, falling through only when a backend
        # cannot be used in this environment
        try:
            return SecureStore(store_dir, self.options.secure_service_name, threshold)
        except (SecureStoreUnavailableError, MissingRequiredParameterError) as e:
            logger.debug({"event": "token_store_fallback", "message": f"Secure store unavailable: {e}", "code": e.code})
        try:
            return FileStore(store_dir, threshold)
        except MissingRequiredParameterError as e:
            logger.debug({"event": "token_store_fallback", "message": f"File store unavailable: {e}", "code": e.code})
        return MemoryStore(threshold)

    def apply_defaults(self, **overrides: Any) -> AuthOptions:
        """Layer call overrides over instance options and environment defaults.

        Returns:
            AuthOptions with env, base_url, realm and platform_url resolved.

        Raises:
            InvalidValueError: If env is unknown.
            pydantic.ValidationError: If an override is unknown or invalid.
        """
        opts = self.options.merged(**overrides)
        environment = resolve_environment(opts.env)
        return opts.model_copy(
            update={
                "env": environment.name,
                "base_url": opts.base_url or environment.base_url,
                "realm": opts.realm or environment.realm,
                "platform_url": opts.platform_url or environment.platform_url,
            }
        )

    def create_authenticator(
        self,
        opts: AuthOptions | None = None,
        authenticator: Authenticator | None = None,
    ) -> Authenticator:
        """Pick the authenticator matching the credentials in opts.

        Precedence: explicit authenticator, username + password, client
        secret, signing key (secret_file or secret), then PKCE.

        Raises:
            InvalidArgumentError: If authenticator is not an Authenticator.
        """
        if authenticator is not None:
            if not isinstance(authenticator, Authenticator):
                raise InvalidArgumentError("Expected authenticator to be an Authenticator instance")
            return authenticator

        opts = opts or self.apply_defaults()

        grant: Grant
        if opts.username and opts.password is not None:
            grant = OwnerPassword(opts.username, opts.password)
        elif opts.client_secret:
            grant = ClientSecret(opts.client_secret, service_account=opts.service_account)
        elif opts.secret_file or opts.secret:
            grant = SignedJWT(secret=opts.secret, secret_file=opts.secret_file)
        else:
            grant = PKCE()

        return Authenticator(
            grant,
            client_id=opts.client_id,  # type: ignore[arg-type]
            realm=opts.realm,
            base_url=opts.base_url,
            env=opts.env,
            platform_url=opts.platform_url,
            endpoints=opts.endpoints,
            scope=opts.scope,
            response_type=opts.response_type,
            access_type=opts.access_type,
            token_store=self.token_store,
            http_client=self._http_client,
            request_timeout=opts.request_timeout,
            persist_secrets=self.persist_secrets,
            server_host=opts.server_host,
            server_port=opts.server_port,
        )

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    async def find(
        self,
        account: str | Account | None = None,
        *,
        authenticator: Authenticator | None = None,
        **overrides: Any,
    ) -> Account | None:
        """Load a stored account, refreshing its tokens when needed.

        Args:
            account: Account name or hash (or an Account). When omitted, the
                hash of the authenticator built from the options is used.
            authenticator: Explicit authenticator to look up and refresh with.
            **overrides: AuthOptions fields for this call.

        Returns:
            The account, or None when it is unknown, dead, its refresh token
            was rejected, or the server no longer accepts its access token.

        Raises:
            AuthFailedError: If an expired account could not be refreshed for
                a reason other than a rejected refresh token.
        """
        if self.token_store is None:
            logger.debug({"event": "find_no_store", "message": "Cannot find account, no token store configured"})
            return None

        if isinstance(account, Account):
            overrides.setdefault("base_url", account.auth.base_url)
            account = account.name

        opts = self.apply_defaults(**overrides)

        if account is not None:
            if not isinstance(account, str):
                raise InvalidArgumentError("Expected account to be an account name or hash")
            stored = await self.token_store.get(account_name=account, hash=account, base_url=opts.base_url)
        else:
            authenticator = self.create_authenticator(opts, authenticator)
            stored = await self.token_store.get(hash=authenticator.hash, base_url=opts.base_url)

        if stored is None:
            return None

        if authenticator is None:
            account_opts = {
                field: getattr(stored.auth, field)
                for field in _ACCOUNT_AUTH_FIELDS
                if getattr(stored.auth, field) is not None
            }
            authenticator = self.create_authenticator(self.apply_defaults(**{**overrides, **account_opts}))

        expires = stored.auth.expires
        do_refresh = stored.auth.expired
        if do_refresh:
            if not stored.auth.refreshable:
                logger.debug(
                    {"event": "account_dead", "message": f"Access and refresh tokens expired for {stored.name}"}
                )
                return None
        elif self.options.token_refresh_threshold and stored.auth.refreshable:
            expires_in = expires.access - now_ms()
            if expires_in < self.options.token_refresh_threshold * 1000:
                logger.debug(
                    {
                        "event": "token_refresh_threshold",
                        "message": f"Access token for {stored.name} expires in {expires_in}ms, refreshing early",
                    }
                )
                do_refresh = True

        if do_refresh:
            try:
                return await authenticator.get_token(account=stored, force_refresh=True)
            except InvalidGrantError as e:
                logger.warning(
                    {
                        "event": "refresh_token_rejected",
                        "message": f"Refresh token rejected for {stored.name}, removing account: {e}",
                        "account": stored.name,
                    }
                )
                await self.token_store.delete(stored.name, stored.auth.base_url)
                return None
            except AuthFailedError as e:
                if stored.auth.expired:
                    raise
                logger.warning(
                    {
                        "event": "token_refresh_failed",
                        "message": f"Failed to refresh {stored.name}, using current access token: {e}",
                        "account": stored.name,
                    }
                )

        try:
            return await authenticator.get_info(stored, strict=True)
        except AuthFailedError as e:
            if e.status_code == 401:
                logger.warning(
                    {
                        "event": "access_token_rejected",
                        "message": f"Access token for {stored.name} was rejected, removing account",
                        "account": stored.name,
                    }
                )
                await self.token_store.delete(stored.name, stored.auth.base_url)
                return None
            logger.warning(
                {
                    "event": "user_info_failed",
                    "message": f"Fetch user info failed for {stored.name}: {e}",
                    "account": stored.name,
                }
            )
            return stored

    async def list(self) -> list[Account]:
        """Live stored accounts for the configured environment."""
        if self.token_store is None:
            return []
        env = resolve_environment(self.options.env).name
        return [entry for entry in await self.token_store.list() if (entry.auth.env or env) == env]

    async def login(
        self,
        *,
        authenticator: Authenticator | None = None,
        code: str | None = None,
        manual: bool = False,
        timeout: float | None = None,
        on_open_browser: Any = None,
        **overrides: Any,
    ) -> Account | ManualLogin:
        """Authenticate with the authenticator matching the given credentials.

        Args:
            authenticator: Explicit authenticator.
            code: Authorization code obtained out of band.
            manual: Return a ManualLogin (url, promise, cancel) instead of
                opening a browser.
            timeout: Seconds to wait for the browser (default:
                interactive_login_timeout).
            on_open_browser: Called with the URL before the browser opens.
            **overrides: AuthOptions fields for this call (username, password,
                client_secret, secret_file, ...).

        Returns:
            The stored Account, or ManualLogin in manual mode.
        """
        opts = self.apply_defaults(**overrides)
        authenticator = self.create_authenticator(opts, authenticator)
        return await authenticator.login(
            code=code,
            manual=manual,
            timeout=timeout or opts.interactive_login_timeout,
            on_open_browser=on_open_browser,
            callback_server=self.callback_server,
        )

    async def logout(
        self,
        accounts: str | Iterable[str] | None = None,
        *,
        all_accounts: bool = False,
        base_url: str | None = None,
    ) -> list[Account]:
        """Revoke accounts.

        Accounts are removed from the store first; that removal stands even if
        the server-side logout fails, which is only logged.

        Args:
            accounts: Account name/hash or a list of them.
            all_accounts: Revoke every stored account.
            base_url: Only revoke accounts of this login server.

        Returns:
            The revoked accounts, marked expired.

        Raises:
            InvalidArgumentError: If accounts is neither a string nor a list.
        """
        if self.token_store is None:
            logger.debug({"event": "logout_no_store", "message": "No token store, nothing to log out"})
            return []

        if all_accounts:
            revoked = await self.token_store.clear(base_url)
        else:
            if isinstance(accounts, str):
                accounts = [accounts]
            elif not isinstance(accounts, (list, tuple, set)):
                raise InvalidArgumentError("Expected accounts to be a list of accounts")
            if not accounts:
                return []
            revoked = await self.token_store.delete(accounts, base_url)

        for entry in revoked:
            entry.auth.mark_expired()
            await self._remote_logout(entry)

        return revoked

    async def _remote_logout(self, account: Account) -> None:
        id_token = account.auth.tokens.id_token
        if not id_token:
            return

        endpoints = {**get_endpoints(account.auth.base_url, account.auth.realm), **(self.options.endpoints or {})}
        url = create_url(endpoints["logout"], {"id_token_hint": id_token})
        try:
            async with borrow_client(self._http_client, self.options.request_timeout) as client:
                response = await client.get(url)
                response.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.warning(
                {
                    "event": "remote_logout_failed",
                    "message": f"Failed to invalidate session for {account.name}: {e}",
                    "account": account.name,
                }
            )
        else:
            logger.debug({"event": "remote_logout", "message": f"Invalidated session for {account.name}"})

    async def update_account(self, account: Account) -> Account:
        """Write an account back to the store (e.g. after changing its org)."""
        if self.token_store is not None:
            await self.token_store.set(account)
        return account

    # ------------------------------------------------------------------
    # Server
    # ------------------------------------------------------------------

    async def server_info(self, url: str | None = None, **overrides: Any) -> dict[str, Any]:
        """Fetch the realm's OpenID configuration document.

        Args:
            url: Document URL (default: the realm's well-known URL).
            **overrides: AuthOptions fields for this call.

        Raises:
            AuthFailedError: If the request fails or the response is not JSON.
        """
        if url is None:
            opts = self.apply_defaults(**overrides)
            endpoints = {**get_endpoints(opts.base_url, opts.realm), **(opts.endpoints or {})}
            url = endpoints["well_known"]

        try:
            async with borrow_client(self._http_client, self.options.request_timeout) as client:
                response = await client.get(url, headers={"Accept": "application/json"})
        except httpx.HTTPError as e:
            raise AuthFailedError(f"Failed to get server info: {e}") from e

        if response.is_error:
            raise AuthFailedError(
                f"Failed to get server info (status {response.status_code})",
                status_code=response.status_code,
            )
        try:
            info = response.json()
        except ValueError as e:
            raise AuthFailedError("Failed to get server info: Invalid server response") from e
        return info
