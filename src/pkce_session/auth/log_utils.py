"""Context-carrying loggers for session components.

Only a fixed set of *non-sensitive* fields may ever be attached to a record:

- ``client_id``  – OAuth client identifier, masked after 4 chars
- ``attempt_id`` – per-login correlation id, first 6 chars kept
- ``env_host``   – host name of the authorization server

Tokens, codes, verifiers and secrets have no slot here.  The fields are set as
record attributes (for structured handlers) and rendered as a ``key=value``
suffix on the message so the default formatter shows them too.

Usage
-----
>>> from pkce_session.auth.log_utils import get_auth_logger
>>> log = get_auth_logger(
...     base_logger_name="pkce-session.auth.machine",
...     client_id="skc_1234567890",
...     attempt_id="123e4567e89b12d3a456426614174000",
...     env_host="auth.example.com",
... )
>>> log.info("Starting login")
INFO pkce-session.auth.machine Starting login [client_id=skc_******** attempt_id=123e45 env_host=auth.example.com]
"""

from __future__ import annotations

import logging
from typing import Any, MutableMapping

_ATTEMPT_ID_CHARS = 6
_CLIENT_ID_KEEP = 4


def mask_sensitive(value: str | None, keep: int = 4) -> str:
    """Return *value* with everything but the first *keep* chars masked."""
    if not value:
        return "<empty>"
    if len(value) <= keep:
        return "*" * len(value)
    return value[:keep] + "*" * min(len(value) - keep, 8)


def _context(
    client_id: str | None, attempt_id: str | None, env_host: str | None
) -> dict[str, str]:
    ctx: dict[str, str] = {}
    if client_id:
        ctx["client_id"] = mask_sensitive(client_id, _CLIENT_ID_KEEP)
    if attempt_id:
        ctx["attempt_id"] = str(attempt_id)[:_ATTEMPT_ID_CHARS]
    if env_host:
        ctx["env_host"] = env_host
    return ctx


class _AuthLoggerAdapter(logging.LoggerAdapter):
    """Attach the whitelisted context to every record."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]):
        if not self.extra:
            return msg, kwargs
        extra = kwargs.get("extra") or {}
        # call-site extras win
        kwargs["extra"] = {**self.extra, **extra}
        suffix = " ".join(f"{k}={v}" for k, v in self.extra.items())
        return f"{msg} [{suffix}]", kwargs


def get_auth_logger(
    *,
    base_logger_name: str = "pkce-session.auth",
    client_id: str | None = None,
    attempt_id: str | None = None,
    env_host: str | None = None,
) -> logging.LoggerAdapter:
    """Return a LoggerAdapter pre-filled with auth context."""
    return _AuthLoggerAdapter(
        logging.getLogger(base_logger_name),
        _context(client_id, attempt_id, env_host),
    )
