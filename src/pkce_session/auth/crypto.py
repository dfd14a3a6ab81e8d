"""Cryptographic primitive provider.

PKCE needs exactly two primitives: a source of secure random bytes and a
SHA-256 digest.  Both are behind :class:`CryptoProvider` so tests can pin the
random source and platforms can plug in a hardware-backed implementation.
"""

from __future__ import annotations

import hashlib
import secrets
from typing import Protocol, runtime_checkable


@runtime_checkable
class CryptoProvider(Protocol):
    """Secure randomness and hashing used by the PKCE generator."""

    def random_bytes(self, length: int) -> bytes: ...

    def sha256(self, data: bytes) -> bytes: ...


class SystemCrypto:
    """Default provider backed by :mod:`secrets` and :mod:`hashlib`."""

    def random_bytes(self, length: int) -> bytes:
        return secrets.token_bytes(length)

    def sha256(self, data: bytes) -> bytes:
        return hashlib.sha256(data).digest()


default_crypto: CryptoProvider = SystemCrypto()
