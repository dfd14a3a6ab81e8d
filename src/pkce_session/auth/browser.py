"""Browser-session collaborator contract and process-wide browser setup.

The interactive part of the flow is delegated to a :class:`BrowserSession`:
given the authorization URL and the redirect target it opens a user-facing
session and resolves with a :class:`~pkce_session.auth.models.BrowserResult`.

Opening a browser needs a one-time, process-wide setup
(:func:`configure_browser`).  That call belongs to the application's
composition root (see :mod:`pkce_session.cli`); the state machine never
performs it.
"""

from __future__ import annotations

import logging
import webbrowser
from typing import Protocol, runtime_checkable

from pkce_session.auth.models import BrowserResult

_LOG = logging.getLogger("pkce-session.auth.browser")

_browser: webbrowser.BaseBrowser | None = None


@runtime_checkable
class BrowserSession(Protocol):
    """Open *url* interactively and wait until the user is sent to *redirect_uri*."""

    async def open(self, url: str, redirect_uri: str) -> BrowserResult: ...


def configure_browser(name: str | None = None) -> webbrowser.BaseBrowser:
    """Select the browser controller used for auth sessions.

    Idempotent: only the first call has an effect for the process lifetime.
    """
    global _browser  # noqa: PLW0603
    if _browser is None:
        _browser = webbrowser.get(name)
        _LOG.debug("Configured browser controller %s", type(_browser).__name__)
    return _browser


def get_browser() -> webbrowser.BaseBrowser:
    """Return the configured controller; fails if setup was never run."""
    if _browser is None:
        raise RuntimeError("configure_browser() must be called during application startup")
    return _browser


def reset_browser() -> None:
    """Forget the configured controller (test helper)."""
    global _browser  # noqa: PLW0603
    _browser = None
