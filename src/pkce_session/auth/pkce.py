"""PKCE (Proof Key for Code Exchange) helpers.

RFC 7636 defines PKCE to protect public OAuth clients.  The mechanism relies on
a *code verifier* (random high-entropy string) generated at the beginning of
the flow and a *code challenge* derived from that verifier that is sent to the
authorization endpoint.

Only the S256 transformation is implemented.  The challenge is the digest of
the verifier's ASCII string, not of the random bytes it was encoded from.

This module performs **no logging** of verifiers or challenges.
"""

from __future__ import annotations

import base64
from typing import Final

from pkce_session.auth.crypto import CryptoProvider, default_crypto
from pkce_session.auth.models import PKCEParameters

# 32 bytes -> 43 characters, 96 bytes -> 128 characters (RFC 7636 §4.1).
_MIN_BYTES: Final[int] = 32
_MAX_BYTES: Final[int] = 96
_DEFAULT_BYTES: Final[int] = 32


def _b64url(data: bytes) -> str:
    """Base64-URL encode *without* padding."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def generate_code_verifier(
    num_bytes: int = _DEFAULT_BYTES, *, crypto: CryptoProvider = default_crypto
) -> str:
    """Generate a high-entropy code verifier.

    Parameters
    ----------
    num_bytes:
        Number of random bytes to draw, 32-96 (default 32).
    crypto:
        Source of randomness; defaults to :class:`SystemCrypto`.

    Returns
    -------
    str
        The base64url-encoded verifier, 43-128 characters long.
    """
    if not _MIN_BYTES <= num_bytes <= _MAX_BYTES:
        raise ValueError("code verifier must be derived from 32-96 random bytes")
    return _b64url(crypto.random_bytes(num_bytes))


def code_challenge_s256(verifier: str, *, crypto: CryptoProvider = default_crypto) -> str:
    """Compute the *S256* PKCE code challenge for a given verifier.

    Returns
    -------
    str
        Base64url-encoded SHA-256 hash without padding.
    """
    return _b64url(crypto.sha256(verifier.encode("ascii")))


def generate_pkce(*, crypto: CryptoProvider = default_crypto) -> PKCEParameters:
    """Return a fresh verifier/challenge pair for one login attempt."""
    verifier = generate_code_verifier(crypto=crypto)
    return PKCEParameters(
        code_verifier=verifier,
        code_challenge=code_challenge_s256(verifier, crypto=crypto),
    )
