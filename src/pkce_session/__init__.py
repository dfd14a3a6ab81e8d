"""pkce-session: OAuth 2.0 Authorization Code + PKCE sessions for native clients."""

from __future__ import annotations

from pkce_session.auth import (  # noqa: F401
    AuthState,
    AuthStateMachine,
    ClientConfiguration,
    LoginOptions,
    TokenRecord,
    UserClaims,
)

__version__ = "0.1.0"

__all__ = [
    "AuthState",
    "AuthStateMachine",
    "ClientConfiguration",
    "LoginOptions",
    "TokenRecord",
    "UserClaims",
    "__version__",
]
