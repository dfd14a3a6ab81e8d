"""Secure storage for session state.

This module introduces a *narrow* async persistence interface
(:class:`SecureStore`), a JSON-file implementation (:class:`DiskSecureStore`)
and the :class:`SessionStore` adapter that maps session records onto three
fixed keys.  The design follows these goals:

* **Atomicity** – writes use *temp-file + os.replace*.
* **Confidentiality** – files are ``0o600`` inside a ``0o700`` directory.
* **Opaque values** – the store only sees strings; the adapter owns JSON.
* **Filename safety** – keys are slugified before hitting the filesystem.

Environment variables
---------------------
PKCE_SESSION_STORAGE_DIR
    Base directory for persisted data.
    Defaults to ``~/.pkce-session/store`` when unset.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Any, Final, Protocol, runtime_checkable

from pkce_session.auth.errors import SessionCleanupError, StorageCorruptError
from pkce_session.auth.models import TokenRecord, UserClaims

_LOG = logging.getLogger("pkce-session.auth.store")

TOKENS_KEY: Final[str] = "pkce_session.tokens"
USER_KEY: Final[str] = "pkce_session.user_info"
VERIFIER_KEY: Final[str] = "pkce_session.code_verifier"
SESSION_KEYS: Final[tuple[str, ...]] = (TOKENS_KEY, USER_KEY, VERIFIER_KEY)

# --------------------------------------------------------------------------- #
# public interface                                                            #
# --------------------------------------------------------------------------- #


@runtime_checkable
class SecureStore(Protocol):
    """Asynchronous key-value store for opaque string blobs."""

    async def get_item(self, key: str) -> str | None: ...

    async def set_item(self, key: str, value: str) -> None: ...

    async def delete_item(self, key: str) -> None: ...


# --------------------------------------------------------------------------- #
# Disk implementation                                                         #
# --------------------------------------------------------------------------- #


def _slug(text: str, max_len: int = 80) -> str:
    """Filesystem-safe slug."""
    text = (text or "").strip().lower()
    text = re.sub(r"[^a-z0-9._-]+", "-", text)
    text = re.sub(r"-{2,}", "-", text).strip("-")
    return text[:max_len] or "unknown"


def _atomic_write(path: Path, data: str) -> None:
    path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        os.chmod(tmp, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(data)
        os.replace(tmp, path)  # atomic on POSIX
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise


class DiskSecureStore(SecureStore):
    """One file per key under a private directory."""

    def __init__(self, base_dir: str | os.PathLike | None = None) -> None:
        self.base_dir = Path(
            base_dir
            or os.getenv("PKCE_SESSION_STORAGE_DIR")
            or Path.home() / ".pkce-session" / "store"
        ).expanduser()
        self.base_dir.mkdir(mode=0o700, parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.base_dir / f"{_slug(key)}.json"

    def _read(self, key: str) -> str | None:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    async def get_item(self, key: str) -> str | None:
        return await asyncio.to_thread(self._read, key)

    async def set_item(self, key: str, value: str) -> None:
        await asyncio.to_thread(_atomic_write, self._path(key), value)

    async def delete_item(self, key: str) -> None:
        await asyncio.to_thread(self._path(key).unlink, missing_ok=True)


# --------------------------------------------------------------------------- #
# Session adapter                                                             #
# --------------------------------------------------------------------------- #


class SessionStore:
    """Persist tokens, user claims and the transient PKCE verifier.

    Reads return ``None`` for missing keys and for blobs that parse but do
    not have the expected shape.  A blob that is not JSON at all raises
    :class:`StorageCorruptError`.
    """

    def __init__(self, secure_store: SecureStore) -> None:
        self.secure_store = secure_store

    async def _load_json(self, key: str) -> Any | None:
        raw = await self.secure_store.get_item(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            raise StorageCorruptError(key) from None

    async def _save_json(self, key: str, value: Any) -> None:
        await self.secure_store.set_item(key, json.dumps(value, separators=(",", ":")))

    # ---------------- tokens ---------------------------------------------- #
    async def save_tokens(self, tokens: TokenRecord) -> None:
        await self._save_json(TOKENS_KEY, tokens.to_dict())

    async def load_tokens(self) -> TokenRecord | None:
        data = await self._load_json(TOKENS_KEY)
        if data is None:
            return None
        try:
            return TokenRecord.from_dict(data)
        except (KeyError, TypeError, ValueError, AttributeError):
            _LOG.warning("Ignoring stored tokens with unexpected shape")
            return None

    # ---------------- user claims ----------------------------------------- #
    async def save_user(self, user: UserClaims) -> None:
        await self._save_json(USER_KEY, user.to_dict())

    async def load_user(self) -> UserClaims | None:
        data = await self._load_json(USER_KEY)
        if data is None:
            return None
        if not isinstance(data, dict):
            _LOG.warning("Ignoring stored user info with unexpected shape")
            return None
        try:
            return UserClaims.from_claims(data)
        except (ValueError, TypeError):
            _LOG.warning("Ignoring stored user info without a subject")
            return None

    # ---------------- PKCE verifier --------------------------------------- #
    async def save_verifier(self, verifier: str) -> None:
        await self._save_json(VERIFIER_KEY, verifier)

    async def load_verifier(self) -> str | None:
        data = await self._load_json(VERIFIER_KEY)
        if isinstance(data, str) and data:
            return data
        return None

    async def delete_verifier(self) -> None:
        await self.secure_store.delete_item(VERIFIER_KEY)

    # ---------------- maintenance ----------------------------------------- #
    async def clear_all(self) -> None:
        """Delete every session key, attempting all of them.

        Raises
        ------
        SessionCleanupError
            After all deletions were attempted, if any of them failed.
        """
        results = await asyncio.gather(
            *(self.secure_store.delete_item(key) for key in SESSION_KEYS),
            return_exceptions=True,
        )
        failures = {
            key: result
            for key, result in zip(SESSION_KEYS, results)
            if isinstance(result, Exception)
        }
        if failures:
            for key, exc in failures.items():
                _LOG.warning("Failed to delete %s: %s", key, exc)
            raise SessionCleanupError(failures)
