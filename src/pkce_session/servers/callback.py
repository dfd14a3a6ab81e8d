"""Loopback redirect receiver for desktop logins.

:class:`LoopbackBrowserSession` is the default
:class:`~pkce_session.auth.browser.BrowserSession`.  It serves a tiny
Starlette app with ``uvicorn`` on the redirect URI's loopback host/port,
opens the authorization URL in the configured browser and resolves once the
authorization server redirects back.

Handlers are intentionally thin: they render a short HTML page for the user
and hand the full callback URL to the session.  Parsing the ``code`` is the
state machine's job.

SECURITY NOTE
-------------
No query values (codes, provider errors) are logged.
"""

from __future__ import annotations

import asyncio
import html
import logging
import socket
from typing import Callable
from urllib.parse import urlparse

import uvicorn
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import HTMLResponse, Response
from starlette.routing import Route

from pkce_session.auth.browser import BrowserSession, get_browser
from pkce_session.auth.models import BrowserResult, BrowserResultType

_LOG = logging.getLogger("pkce-session.servers.callback")

_LOOPBACK_HOSTS = ("127.0.0.1", "localhost", "::1")


def _html_page(title: str, body: str, status: int = 200) -> HTMLResponse:
    """Return a tiny success / error HTML page."""
    content = (
        "<!doctype html><html lang='en'>"
        "<head><meta charset='utf-8'><title>"
        f"{html.escape(title)}</title></head><body><h1>{html.escape(title)}</h1>"
        f"<p>{html.escape(body)}</p></body></html>"
    )
    return HTMLResponse(content, status_code=status)


def create_callback_app(path: str, on_callback: Callable[[str], None]) -> Starlette:
    """Return an ASGI app that reports ``GET {path}`` requests to *on_callback*."""

    async def _oauth_callback(request: Request) -> Response:
        on_callback(str(request.url))

        oauth_error = request.query_params.get("error")
        if oauth_error:
            description = request.query_params.get("error_description", "")
            return _html_page(
                "Authorization error",
                f"{oauth_error}: {description}" if description else oauth_error,
                400,
            )
        if not request.query_params.get("code"):
            return _html_page("Missing parameters", "code missing", 400)
        return _html_page(
            "Authorization successful",
            "You may close this window and return to the application.",
        )

    return Starlette(routes=[Route(path or "/", _oauth_callback, methods=["GET"])])


def _default_opener(url: str) -> bool:
    return get_browser().open(url)


def _bind(host: str, port: int) -> socket.socket:
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
    except OSError:
        sock.close()
        raise
    return sock


class LoopbackBrowserSession(BrowserSession):
    """Open the system browser and receive the redirect on a loopback port.

    Waits indefinitely unless *timeout* (seconds) is given; a timeout
    resolves as ``DISMISS``.  :meth:`cancel` resolves a pending session as
    ``CANCEL``.
    """

    def __init__(
        self,
        *,
        timeout: float | None = None,
        opener: Callable[[str], bool] | None = None,
    ) -> None:
        self._timeout = timeout
        self._opener = opener or _default_opener
        self._pending: asyncio.Future[BrowserResult] | None = None

    def cancel(self) -> None:
        """Resolve the in-flight session, if any, as cancelled by the user."""
        if self._pending is not None and not self._pending.done():
            self._pending.set_result(BrowserResult(BrowserResultType.CANCEL))

    async def open(self, url: str, redirect_uri: str) -> BrowserResult:
        target = urlparse(redirect_uri)
        host = target.hostname or ""
        if target.scheme != "http" or host not in _LOOPBACK_HOSTS or not target.port:
            return BrowserResult(
                BrowserResultType.FAILURE,
                error="redirect URI must be http://<loopback>:<port>/...",
            )
        bind_host = "127.0.0.1" if host == "localhost" else host

        try:
            sock = _bind(bind_host, target.port)
        except OSError as exc:
            _LOG.warning("Could not bind callback port %s: %s", target.port, exc)
            return BrowserResult(BrowserResultType.FAILURE, error=str(exc))

        pending: asyncio.Future[BrowserResult] = asyncio.get_running_loop().create_future()
        self._pending = pending

        def _on_callback(callback_url: str) -> None:
            if not pending.done():
                pending.set_result(BrowserResult(BrowserResultType.SUCCESS, url=callback_url))

        app = create_callback_app(target.path, _on_callback)
        config = uvicorn.Config(app, log_level="warning", log_config=None, lifespan="off")
        server = uvicorn.Server(config)
        server_task = asyncio.create_task(server.serve(sockets=[sock]))
        try:
            while not server.started:
                if server_task.done():
                    return BrowserResult(
                        BrowserResultType.FAILURE, error="callback server failed to start"
                    )
                await asyncio.sleep(0.01)

            opened = await asyncio.to_thread(self._opener, url)
            if not opened:
                return BrowserResult(BrowserResultType.FAILURE, error="could not open a browser")
            _LOG.info("Waiting for authorization callback on %s", redirect_uri)

            if self._timeout is None:
                return await pending
            try:
                return await asyncio.wait_for(asyncio.shield(pending), self._timeout)
            except asyncio.TimeoutError:
                _LOG.info("No authorization callback within %ss", self._timeout)
                return BrowserResult(BrowserResultType.DISMISS)
        finally:
            self._pending = None
            server.should_exit = True
            try:
                await server_task
            except Exception as exc:  # pragma: no cover
                _LOG.debug("Callback server shutdown error: %s", exc)
            sock.close()
