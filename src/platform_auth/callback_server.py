"""Loopback HTTP server receiving browser redirects during interactive login.

The server is started on demand when the first callback is created and torn
down as soon as no callback is waiting, so no port stays open between logins.

Each callback gets its own URL (``/callback/<REQUESTID>``), its own deadline
timer and its own future. Timing out or cancelling one callback never
affects the others on the same listener.

Usage:
    server = CallbackServer()
    handle = await server.create_callback(handler)
    # ... send the browser to handle.url ...
    result = await handle.start()

Built on starlette (routing, responses) and uvicorn (HTTP serving) running
on a pre-bound socket inside the caller's event loop.
"""

from __future__ import annotations

__all__ = [
    "CallbackHandle",
    "CallbackHandler",
    "CallbackReply",
    "CallbackResult",
    "CallbackServer",
    "parse_server_port",
    "preferred_media_type",
    "render_message",
    "render_page",
]

import asyncio
import errno
import html
import json
import logging
import secrets
import socket
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

import uvicorn
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import Response
from starlette.routing import Route

from platform_auth.constants import (
    CALLBACK_HOST,
    CALLBACK_REQUEST_ID_BYTES,
    CALLBACK_SERVER_POLL_INTERVAL_SECONDS,
    CALLBACK_SERVER_SHUTDOWN_TIMEOUT_SECONDS,
    CALLBACK_SERVER_STARTUP_TIMEOUT_SECONDS,
    DEFAULT_CALLBACK_PORT,
    DEFAULT_CALLBACK_TIMEOUT_SECONDS,
    MAX_CALLBACK_PORT,
    MIN_CALLBACK_PORT,
)
from platform_auth.exceptions import (
    AuthCancelledError,
    AuthTimeoutError,
    InvalidParameterError,
    InvalidRangeError,
    ServerStoppedError,
)
from platform_auth.utils.logging.logger import get_logger

logger = get_logger("callback_server")

_LISTEN_BACKLOG = 16


@dataclass
class CallbackReply:
    """HTTP response a callback handler may customize.

    Defaults to ``200 OK`` as text/plain.
    """

    status_code: int = 200
    body: str = "OK"
    media_type: str = "text/plain"
    headers: dict[str, str] = field(default_factory=dict)

    def redirect(self, location: str, body: str = "", media_type: str = "text/html") -> None:
        """Answer with a 302 redirect."""
        self.status_code = 302
        self.headers["Location"] = location
        self.body = body
        self.media_type = media_type

    def to_response(self) -> Response:
        return Response(self.body, status_code=self.status_code, headers=self.headers, media_type=self.media_type)


@dataclass(frozen=True)
class CallbackResult:
    """Value a started callback resolves with."""

    result: Any
    url: str


CallbackHandler = Callable[[Request, CallbackReply], Awaitable[Any]]


@dataclass
class PendingCallback:
    """A started callback waiting for its redirect."""

    request_id: str
    handler: CallbackHandler | None
    future: asyncio.Future[CallbackResult]
    timer: asyncio.TimerHandle


def render_page(title: str, message: str, status_code: int | None = None) -> str:
    """Render the small HTML page shown in the browser after a redirect."""
    heading = f"{status_code} {title}" if status_code else title
    return (
        "<!DOCTYPE html>\n"
        "<html>\n"
        f"<head><meta charset=\"utf-8\"><title>{html.escape(title)}</title></head>\n"
        "<body style=\"font-family: sans-serif; margin: 3em;\">\n"
        f"<h1>{html.escape(heading)}</h1>\n"
        f"<p>{html.escape(message)}</p>\n"
        "</body>\n"
        "</html>\n"
    )


# Media types a callback page can be rendered as, in order of preference
_PAGE_MEDIA_TYPES = ("text/html", "application/json")


def _accept_quality(accept: str, media_type: str) -> float:
    """Quality the Accept header gives a media type (most specific range wins)."""
    main_type = media_type.split("/")[0]
    best: tuple[int, float] = (-1, 0.0)
    for part in accept.split(","):
        media_range, *params = (piece.strip() for piece in part.split(";"))
        if media_range == media_type:
            specificity = 2
        elif media_range == f"{main_type}/*":
            specificity = 1
        elif media_range == "*/*":
            specificity = 0
        else:
            continue

        quality = 1.0
        for param in params:
            name, _, value = param.partition("=")
            if name.strip() == "q":
                try:
                    quality = float(value)
                except ValueError:
                    quality = 0.0
        if specificity > best[0]:
            best = (specificity, quality)
    return best[1]


def preferred_media_type(accept: str | None) -> str:
    """Pick how to render a callback page for an Accept header.

    HTML when the header is absent or allows it, JSON when that is preferred,
    plain text when the client accepts neither.
    """
    if not accept:
        return _PAGE_MEDIA_TYPES[0]

    chosen, chosen_quality = "text/plain", 0.0
    for media_type in _PAGE_MEDIA_TYPES:
        quality = _accept_quality(accept, media_type)
        if quality > chosen_quality:
            chosen, chosen_quality = media_type, quality
    return chosen


def render_message(
    request: Request,
    title: str,
    message: str,
    *,
    status_code: int | None = None,
    success: bool = True,
) -> tuple[str, str]:
    """Render a callback page in the format the request accepts.

    Returns:
        Tuple of (body, media_type).
    """
    media_type = preferred_media_type(request.headers.get("accept"))
    if media_type == "text/html":
        return render_page(title, message, status_code), media_type
    if media_type == "application/json":
        return json.dumps({"message": message, "success": success}), media_type
    return message, media_type


def parse_server_port(value: int | str) -> int:
    """Validate a configured callback port.

    Args:
        value: Port number, or its decimal string (environment variables).

    Raises:
        InvalidParameterError: If the value is not a whole number.
        InvalidRangeError: If the port is outside 1024-65535.
    """
    message = f"Expected server port to be a number between {MIN_CALLBACK_PORT} and {MAX_CALLBACK_PORT}"
    if isinstance(value, bool):
        raise InvalidParameterError(message)
    try:
        port = int(value)
    except (TypeError, ValueError):
        raise InvalidParameterError(message) from None
    if not MIN_CALLBACK_PORT <= port <= MAX_CALLBACK_PORT:
        raise InvalidRangeError(message)
    return port


class CallbackHandle:
    """One registered callback: its URL plus start/cancel controls."""

    def __init__(
        self,
        server: CallbackServer,
        request_id: str,
        url: str,
        handler: CallbackHandler | None,
        timeout: float,
    ) -> None:
        self._server = server
        self.request_id = request_id
        self.url = url
        self.handler = handler
        self.timeout = timeout
        self._future: asyncio.Future[CallbackResult] | None = None
        self._error: Exception | None = None

    def start(self) -> asyncio.Future[CallbackResult]:
        """Start waiting for the redirect.

        Idempotent: later calls return the same future.

        Returns:
            Future resolving with a CallbackResult, or failing with
            AuthTimeoutError, AuthCancelledError, ServerStoppedError or the
            handler's exception.
        """
        if self._future is None:
            self._future = self._server._register(self)
        return self._future

    async def cancel(self) -> None:
        """Stop waiting. The future (if started) fails with AuthCancelledError."""
        await self._server._cancel(self)


class CallbackServer:
    """On-demand loopback HTTP server for login redirects.

    Args:
        host: Interface to bind (loopback).
        port: Preferred port. A busy port falls back to a free one; 0 always
            picks a free port.
        timeout: Default seconds a started callback waits for its redirect.
    """

    def __init__(
        self,
        host: str = CALLBACK_HOST,
        port: int = DEFAULT_CALLBACK_PORT,
        timeout: float = DEFAULT_CALLBACK_TIMEOUT_SECONDS,
    ) -> None:
        self.host = host
        self.port = port
        self.timeout = timeout
        self.url: str | None = None

        # Created but not yet started, keyed by request id
        self._handles: dict[str, CallbackHandle] = {}
        self._pending: dict[str, PendingCallback] = {}

        self._app = Starlette(
            routes=[
                Route("/callback/{request_id}", self._handle_callback),
                Route("/{path:path}", self._handle_unknown),
            ]
        )
        self._server: uvicorn.Server | None = None
        self._serve_task: asyncio.Task[None] | None = None
        self._socket: socket.socket | None = None
        self._lock = asyncio.Lock()
        self._background: set[asyncio.Task[None]] = set()

    @property
    def running(self) -> bool:
        """True while the listener is up."""
        return self._server is not None

    @property
    def pending(self) -> list[str]:
        """Request ids of started callbacks still waiting."""
        return list(self._pending)

    async def __aenter__(self) -> CallbackServer:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop(force=True)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def create_callback(
        self,
        handler: CallbackHandler | None = None,
        timeout: float | None = None,
    ) -> CallbackHandle:
        """Register a callback URL, starting the listener if needed.

        Args:
            handler: Coroutine called with the request and a CallbackReply.
                Its return value becomes CallbackResult.result.
            timeout: Seconds to wait once started (default: server timeout).

        Returns:
            CallbackHandle with the callback URL.
        """
        await self._ensure_listener()

        request_id = secrets.token_hex(CALLBACK_REQUEST_ID_BYTES).upper()
        while request_id in self._handles or request_id in self._pending:
            request_id = secrets.token_hex(CALLBACK_REQUEST_ID_BYTES).upper()

        handle = CallbackHandle(
            self,
            request_id,
            f"{self.url}/callback/{request_id}",
            handler,
            timeout if timeout is not None else self.timeout,
        )
        self._handles[request_id] = handle
        return handle

    async def stop(self, force: bool = False) -> None:
        """Tear down the listener.

        Without force, only tears down when no callback is waiting. With
        force, every waiting callback fails with ServerStoppedError first.
        """
        if not force and (self._pending or self._handles):
            return

        for request_id in list(self._pending):
            self._settle(request_id, exception=ServerStoppedError("Server stopped"))
        for handle in self._handles.values():
            handle._error = ServerStoppedError("Server stopped")
        self._handles.clear()

        await self._teardown()

    # ------------------------------------------------------------------
    # Pending map
    # ------------------------------------------------------------------

    def _register(self, handle: CallbackHandle) -> asyncio.Future[CallbackResult]:
        loop = asyncio.get_running_loop()
        future: asyncio.Future[CallbackResult] = loop.create_future()

        if self._handles.pop(handle.request_id, None) is None:
            future.set_exception(handle._error or ServerStoppedError("Server stopped"))
            return future

        timer = loop.call_later(handle.timeout, self._on_timeout, handle.request_id)
        self._pending[handle.request_id] = PendingCallback(
            request_id=handle.request_id,
            handler=handle.handler,
            future=future,
            timer=timer,
        )
        logger.debug(
            {
                "event": "callback_started",
                "message": f"Waiting for callback {handle.url}",
                "request_id": handle.request_id,
                "timeout": handle.timeout,
            }
        )
        return future

    def _settle(
        self,
        request_id: str,
        *,
        result: CallbackResult | None = None,
        exception: BaseException | None = None,
    ) -> None:
        pending = self._pending.pop(request_id, None)
        if pending is None:
            return
        pending.timer.cancel()
        if pending.future.done():
            return
        if exception is not None:
            pending.future.set_exception(exception)
        else:
            pending.future.set_result(result)  # type: ignore[arg-type]

    def _on_timeout(self, request_id: str) -> None:
        logger.warning(
            {
                "event": "callback_timeout",
                "message": f"Timed out waiting for callback {request_id}",
                "request_id": request_id,
            }
        )
        self._settle(request_id, exception=AuthTimeoutError("Authentication failed: Timed out"))
        self._schedule_idle_teardown()

    async def _cancel(self, handle: CallbackHandle) -> None:
        request_id = handle.request_id
        if self._handles.pop(request_id, None) is not None:
            handle._error = AuthCancelledError("Authentication cancelled")
        elif request_id in self._pending:
            self._settle(request_id, exception=AuthCancelledError("Authentication cancelled"))
        else:
            return

        logger.debug({"event": "callback_cancelled", "message": f"Cancelled callback {request_id}"})
        await self.stop()

    # ------------------------------------------------------------------
    # HTTP handlers
    # ------------------------------------------------------------------

    async def _handle_callback(self, request: Request) -> Response:
        request_id = request.path_params["request_id"]
        pending = self._pending.get(request_id)
        if pending is None:
            logger.warning(
                {
                    "event": "callback_unknown_id",
                    "message": f"Received callback for unknown request id {request_id}",
                    "request_id": request_id,
                }
            )
            return self._error_response(request, 400, "Invalid Request ID")

        reply = CallbackReply()
        try:
            result = await pending.handler(request, reply) if pending.handler is not None else None
        except Exception as e:
            logger.warning(
                {
                    "event": "callback_handler_failed",
                    "message": f"Callback {request_id} failed: {e}",
                    "request_id": request_id,
                    "error": str(e),
                    "error_type": type(e).__name__,
                }
            )
            self._settle(request_id, exception=e)
            self._schedule_idle_teardown()
            status_code = getattr(e, "status_code", None)
            if not isinstance(status_code, int) or not 400 <= status_code < 600:
                status_code = 400
            return self._error_response(request, status_code, str(e))

        self._settle(request_id, result=CallbackResult(result=result, url=str(request.url)))
        self._schedule_idle_teardown()
        return reply.to_response()

    async def _handle_unknown(self, request: Request) -> Response:
        return self._error_response(request, 400, "Bad Request")

    @staticmethod
    def _error_response(request: Request, status_code: int, message: str) -> Response:
        body, media_type = render_message(request, "Error", message, status_code=status_code, success=False)
        return Response(body, status_code=status_code, media_type=media_type)

    # ------------------------------------------------------------------
    # Listener lifecycle
    # ------------------------------------------------------------------

    def _bind(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((self.host, self.port))
        except OSError as e:
            if e.errno != errno.EADDRINUSE or self.port == 0:
                sock.close()
                raise
            logger.debug(
                {
                    "event": "callback_port_in_use",
                    "message": f"Port {self.port} is in use, picking a free port",
                    "port": self.port,
                }
            )
            sock.bind((self.host, 0))
        sock.listen(_LISTEN_BACKLOG)
        sock.setblocking(False)
        return sock

    async def _ensure_listener(self) -> None:
        async with self._lock:
            if self._server is not None:
                return

            # Suppress uvicorn's logging (we use our own)
            for logger_name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
                logging.getLogger(logger_name).setLevel(logging.CRITICAL)

            sock = self._bind()
            config = uvicorn.Config(
                self._app,
                fd=sock.fileno(),
                log_config=None,
                access_log=False,
                lifespan="off",
                ws="none",
            )
            server = uvicorn.Server(config)
            # _serve() avoids installing signal handlers in the caller's loop
            task = asyncio.create_task(server._serve())

            max_polls = int(CALLBACK_SERVER_STARTUP_TIMEOUT_SECONDS / CALLBACK_SERVER_POLL_INTERVAL_SECONDS)
            for _ in range(max_polls):
                if server.started or task.done():
                    break
                await asyncio.sleep(CALLBACK_SERVER_POLL_INTERVAL_SECONDS)

            if not server.started:
                server.should_exit = True
                if not task.done():
                    task.cancel()
                sock.close()
                exc = task.exception() if task.done() and not task.cancelled() else None
                raise RuntimeError(f"Callback server failed to start: {exc or 'startup timed out'}") from exc

            port = sock.getsockname()[1]
            self._server, self._serve_task, self._socket = server, task, sock
            self.url = f"http://{self.host}:{port}"
            logger.debug(
                {
                    "event": "callback_server_started",
                    "message": f"Callback server listening on {self.url}",
                    "port": port,
                }
            )

    def _schedule_idle_teardown(self) -> None:
        if self._pending or self._handles:
            return
        task = asyncio.get_running_loop().create_task(self._teardown(only_if_idle=True))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _teardown(self, only_if_idle: bool = False) -> None:
        async with self._lock:
            if self._server is None:
                return
            if only_if_idle and (self._pending or self._handles):
                return

            server, task, sock = self._server, self._serve_task, self._socket
            self._server = self._serve_task = self._socket = None
            self.url = None

            # Stop accepting and close idle keep-alive connections right away,
            # in-flight responses are finished first
            server.should_exit = True
            server.force_exit = True
            for connection in list(server.server_state.connections):
                connection.shutdown()

            try:
                await asyncio.wait_for(task, timeout=CALLBACK_SERVER_SHUTDOWN_TIMEOUT_SECONDS)
            except asyncio.TimeoutError:
                logger.warning(
                    {
                        "event": "callback_server_shutdown_timeout",
                        "message": "Callback server shutdown timed out, cancelling",
                    }
                )
                task.cancel()
            except asyncio.CancelledError:
                pass
            finally:
                try:
                    sock.close()
                except OSError:
                    pass  # Non-critical cleanup

            logger.debug({"event": "callback_server_stopped", "message": "Callback server stopped"})
