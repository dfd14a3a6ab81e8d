"""Exception types raised by the session engine.

Only lightweight, **data-carrying** exceptions live here so that UI/CLI layers
can transform them into user-friendly messages.  ``str(exc)`` is the
human-readable text placed in ``AuthState.error``; :meth:`AuthError.to_payload`
never includes tokens, codes or verifiers.
"""

from __future__ import annotations

from typing import Any, ClassVar


class AuthError(RuntimeError):
    """Base class for all session-engine failures."""

    code: ClassVar[str] = "auth_error"
    default_message: ClassVar[str] = "Authentication error."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)

    def to_payload(self) -> dict[str, Any]:
        """Return a JSON-serialisable payload **without secrets**."""
        return {"error": self.code, "message": str(self)}


class MissingVerifierError(AuthError):
    """No stored PKCE verifier; the flow was not started or was restarted."""

    code = "missing_verifier"
    default_message = "Code verifier not found. Please restart the login flow."


class TokenExchangeFailedError(AuthError):
    """The token endpoint rejected the exchange or could not be reached."""

    code = "token_exchange_failed"

    def __init__(
        self,
        message: str | None = None,
        *,
        status_code: int | None = None,
        body: str | None = None,
    ) -> None:
        if message is None:
            message = f"Token exchange failed: {body}" if body else "Token exchange failed."
        super().__init__(message)
        self.status_code = status_code
        self.body = body

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["status_code"] = self.status_code
        return payload


class MalformedTokenError(AuthError):
    """The identity token is not a decodable three-segment JWT."""

    code = "malformed_token"
    default_message = "Failed to decode user information from id_token."


class StorageCorruptError(AuthError):
    """A persisted blob exists but is not valid JSON."""

    code = "storage_corrupt"

    def __init__(self, key: str, message: str | None = None) -> None:
        super().__init__(message or f"Stored value for {key!r} is corrupt.")
        self.key = key

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["key"] = self.key
        return payload


class AuthorizationIncompleteError(AuthError):
    """The browser reported success but the callback carried no code."""

    code = "authorization_incomplete"
    default_message = "No authorization code received."

    def __init__(self, message: str | None = None, *, provider_error: str | None = None) -> None:
        super().__init__(message)
        self.provider_error = provider_error


class AuthenticationFailedError(AuthError):
    """The browser session ended in anything other than success or cancel."""

    code = "authentication_failed"
    default_message = "Authentication was not successful."

    def __init__(self, message: str | None = None, *, result_type: str | None = None) -> None:
        super().__init__(message)
        self.result_type = result_type

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["result_type"] = self.result_type
        return payload


class NoActiveSessionError(AuthError):
    """An operation needed a logged-in session and there is none."""

    code = "no_active_session"
    default_message = "No active session."


class MissingIdentityTokenError(AuthError):
    """The token response did not include an ``id_token``."""

    code = "missing_id_token"
    default_message = "No id_token received from the authorization server."


class SessionCleanupError(AuthError):
    """Some stored keys could not be deleted; the others were."""

    code = "session_cleanup_failed"

    def __init__(self, failures: dict[str, BaseException]) -> None:
        keys = ", ".join(sorted(failures))
        super().__init__(f"Failed to clear stored session data: {keys}")
        self.failures = failures

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["keys"] = sorted(self.failures)
        return payload
