"""Utility functions for building client configuration from the environment."""

from __future__ import annotations

import logging
import os
import re
from typing import Final, Mapping

from pkce_session.auth.models import DEFAULT_SCOPES, ClientConfiguration

logger = logging.getLogger("pkce-session.utils.environment")

ENV_PREFIX: Final[str] = "PKCE_SESSION_"
_REQUIRED: Final[tuple[str, ...]] = ("ENV_URL", "CLIENT_ID")


def _env_get(environ: Mapping[str, str], key: str) -> str | None:
    value = environ.get(ENV_PREFIX + key)
    if value is None:
        return None
    value = value.strip()
    return value or None


def parse_scopes(raw: str | None) -> tuple[str, ...]:
    """Split a space- or comma-separated scope list; empty means the defaults."""
    if not raw:
        return DEFAULT_SCOPES
    scopes = tuple(s for s in re.split(r"[\s,]+", raw) if s)
    return scopes or DEFAULT_SCOPES


def config_from_env(environ: Mapping[str, str] | None = None) -> ClientConfiguration:
    """Build a :class:`ClientConfiguration` from ``PKCE_SESSION_*`` variables.

    Raises
    ------
    ValueError
        If ``PKCE_SESSION_ENV_URL`` or ``PKCE_SESSION_CLIENT_ID`` is missing.
    """
    env = os.environ if environ is None else environ
    missing = [ENV_PREFIX + key for key in _REQUIRED if not _env_get(env, key)]
    if missing:
        raise ValueError(f"missing required environment variables: {', '.join(missing)}")

    config = ClientConfiguration(
        env_url=_env_get(env, "ENV_URL") or "",
        client_id=_env_get(env, "CLIENT_ID") or "",
        client_secret=_env_get(env, "CLIENT_SECRET"),
        redirect_uri=_env_get(env, "REDIRECT_URI"),
        scopes=parse_scopes(_env_get(env, "SCOPES")),
        app_scheme=_env_get(env, "APP_SCHEME"),
    )
    logger.debug(
        "Loaded client configuration for %s (confidential=%s)",
        config.env_url,
        bool(config.client_secret),
    )
    return config
