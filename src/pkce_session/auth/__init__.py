"""Session authentication core package.

This namespace hosts the **UI-agnostic** building blocks of the OAuth 2.0
Authorization Code + PKCE flow for native clients.

Sub-modules
-----------
clock
    Test-friendly time abstraction.
crypto
    Secure randomness and SHA-256 provider.
pkce
    Proof-Key for Code Exchange helpers.
models
    Immutable dataclasses for configuration, tokens, claims and auth state.
errors
    Exception types used by the session logic.
identity
    ID token payload decoding (no signature verification).
store
    Secure key-value storage and the session adapter on top of it.
exchange
    Authorization URL construction and code-for-token exchange.
browser
    Browser-session contract and one-time browser setup.
observable
    Publish/subscribe container for auth state snapshots.
machine
    The auth state machine orchestrating restore, login and logout.
log_utils
    Structured logging helpers (thin wrapper around :pymod:`logging`).

All public objects are re-exported here for convenience.
"""

from __future__ import annotations

from .browser import BrowserSession, configure_browser  # noqa: F401
from .clock import Clock, default_clock  # noqa: F401
from .crypto import CryptoProvider, SystemCrypto  # noqa: F401
from .errors import (  # noqa: F401
    AuthenticationFailedError,
    AuthError,
    AuthorizationIncompleteError,
    MalformedTokenError,
    MissingIdentityTokenError,
    MissingVerifierError,
    NoActiveSessionError,
    SessionCleanupError,
    StorageCorruptError,
    TokenExchangeFailedError,
)
from .exchange import TokenExchangeClient, build_authorization_url  # noqa: F401
from .identity import decode_id_token  # noqa: F401
from .log_utils import get_auth_logger  # noqa: F401
from .machine import AuthStateMachine  # noqa: F401
from .models import (  # noqa: F401
    AuthState,
    BrowserResult,
    BrowserResultType,
    ClientConfiguration,
    LoginOptions,
    PKCEParameters,
    TokenRecord,
    UserClaims,
)
from .observable import AuthStateObservable  # noqa: F401
from .pkce import code_challenge_s256, generate_code_verifier, generate_pkce  # noqa: F401
from .store import DiskSecureStore, SecureStore, SessionStore  # noqa: F401

__all__ = [
    # browser
    "BrowserSession",
    "configure_browser",
    # clock
    "Clock",
    "default_clock",
    # crypto
    "CryptoProvider",
    "SystemCrypto",
    # errors
    "AuthError",
    "AuthenticationFailedError",
    "AuthorizationIncompleteError",
    "MalformedTokenError",
    "MissingIdentityTokenError",
    "MissingVerifierError",
    "NoActiveSessionError",
    "SessionCleanupError",
    "StorageCorruptError",
    "TokenExchangeFailedError",
    # exchange
    "TokenExchangeClient",
    "build_authorization_url",
    # identity
    "decode_id_token",
    # logging helpers
    "get_auth_logger",
    # machine
    "AuthStateMachine",
    # models
    "AuthState",
    "BrowserResult",
    "BrowserResultType",
    "ClientConfiguration",
    "LoginOptions",
    "PKCEParameters",
    "TokenRecord",
    "UserClaims",
    # observable
    "AuthStateObservable",
    # pkce
    "code_challenge_s256",
    "generate_code_verifier",
    "generate_pkce",
    # store
    "DiskSecureStore",
    "SecureStore",
    "SessionStore",
]
