"""Identity token decoding.

TRUST BOUNDARY
--------------
:func:`decode_id_token` is a *parser*, not a verifier.  It checks neither the
signature nor ``exp``/``aud``/``iss``.  The resulting claims are trusted only
because the token was received directly from the token endpoint over the
exchange's TLS channel.  Never feed it a token obtained from anywhere else
(deep links, user input, other apps) and treat the claims as authenticated.
"""

from __future__ import annotations

import base64
import binascii
import json

from pkce_session.auth.errors import MalformedTokenError
from pkce_session.auth.models import UserClaims


def _b64d(data: str) -> bytes:
    """Decode base64-URL data that may lack padding."""
    pad_len = (-len(data)) % 4
    standard = data.replace("-", "+").replace("_", "/")
    return base64.b64decode(standard + "=" * pad_len, validate=True)


def decode_id_token(id_token: str) -> UserClaims:
    """Return the claims carried in *id_token*'s payload segment.

    Raises
    ------
    MalformedTokenError
        If the token does not have exactly three segments, or its payload is
        not a base64url JSON object with a string ``sub``.
    """
    parts = id_token.split(".")
    if len(parts) != 3:
        raise MalformedTokenError(
            f"Invalid JWT format: expected 3 segments, got {len(parts)}"
        )
    try:
        payload = json.loads(_b64d(parts[1]).decode("utf-8"))
    except (binascii.Error, ValueError) as exc:
        raise MalformedTokenError() from exc
    if not isinstance(payload, dict):
        raise MalformedTokenError("id_token payload is not a JSON object")
    try:
        return UserClaims.from_claims(payload)
    except (ValueError, TypeError) as exc:
        raise MalformedTokenError(f"id_token payload is invalid: {exc}") from exc
