"""AuthStateMachine – the session orchestrator.

States::

    Initializing ──restore()──► Authenticated | Unauthenticated
    Unauthenticated ──login()──► (LoggingIn) ──► Authenticated | Unauthenticated
    Authenticated ──logout()──► Unauthenticated

Every transition replaces the :class:`AuthState` snapshot and is published
through :class:`AuthStateObservable`.  ``is_loading`` is published *before*
the first ``await`` of :meth:`login` / :meth:`logout` and cleared only by the
terminal transition.  It is the only exclusion signal: callers must not
start a second login/logout while it is set.  The machine does not lock.

``restore``, ``login`` and ``logout`` never raise; failures end up in
``state.error``.  ``refresh_user`` propagates.  ``get_access_token`` returns
``None`` for every "no usable token" case.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import replace
from typing import Any, Callable
from urllib.parse import parse_qs, urlparse

from pkce_session.auth.browser import BrowserSession
from pkce_session.auth.clock import Clock, default_clock
from pkce_session.auth.crypto import CryptoProvider, default_crypto
from pkce_session.auth.errors import (
    AuthenticationFailedError,
    AuthorizationIncompleteError,
    MissingIdentityTokenError,
    NoActiveSessionError,
    StorageCorruptError,
)
from pkce_session.auth.exchange import TokenExchangeClient
from pkce_session.auth.identity import decode_id_token
from pkce_session.auth.log_utils import get_auth_logger, mask_sensitive
from pkce_session.auth.models import (
    AuthState,
    BrowserResult,
    BrowserResultType,
    ClientConfiguration,
    LoginOptions,
    TokenRecord,
    UserClaims,
)
from pkce_session.auth.observable import AuthStateObservable, Listener
from pkce_session.auth.pkce import generate_pkce
from pkce_session.auth.store import SessionStore

_LOGGER_NAME = "pkce-session.auth.machine"

_CANCELLED = (BrowserResultType.CANCEL, BrowserResultType.DISMISS)


class AuthStateMachine:
    """Own the in-memory auth state and sequence restore/login/logout."""

    def __init__(
        self,
        config: ClientConfiguration,
        *,
        session_store: SessionStore,
        exchange_client: TokenExchangeClient,
        browser_session: BrowserSession,
        crypto: CryptoProvider = default_crypto,
        clock: Clock = default_clock,
        observable: AuthStateObservable | None = None,
    ) -> None:
        self.config = config
        self.session_store = session_store
        self.exchange_client = exchange_client
        self.browser_session = browser_session
        self._crypto = crypto
        self._clock = clock
        self._observable = observable or AuthStateObservable(AuthState())
        self._env_host = urlparse(config.env_url).hostname
        self._log = get_auth_logger(
            base_logger_name=_LOGGER_NAME,
            client_id=config.client_id,
            env_host=self._env_host,
        )

    @classmethod
    async def create(cls, config: ClientConfiguration, **kwargs: Any) -> AuthStateMachine:
        """Construct the machine and run the startup restore."""
        machine = cls(config, **kwargs)
        await machine.restore()
        return machine

    # ------------------------------------------------------------------ #
    # State access                                                       #
    # ------------------------------------------------------------------ #
    @property
    def state(self) -> AuthState:
        return self._observable.value

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        return self._observable.subscribe(listener)

    def subscribe_queue(self) -> asyncio.Queue[AuthState]:
        return self._observable.subscribe_queue()

    def unsubscribe_queue(self, queue: asyncio.Queue[AuthState]) -> None:
        self._observable.unsubscribe_queue(queue)

    def is_expired(self, tokens: TokenRecord) -> bool:
        return tokens.is_expired(clock=self._clock)

    def _publish(self, state: AuthState) -> None:
        self._observable.publish(state)

    def _unauthenticated(self, error: str | None = None) -> AuthState:
        self._publish(AuthState(is_loading=False, is_authenticated=False, error=error))
        return self.state

    # ------------------------------------------------------------------ #
    # Startup restore                                                    #
    # ------------------------------------------------------------------ #
    async def restore(self) -> AuthState:
        """Reconcile persisted session data with memory.  Never raises."""
        try:
            return await self._restore()
        except Exception as exc:
            self._log.warning("Session restore failed: %s", exc, exc_info=True)
            return self._unauthenticated(f"Failed to initialize authentication: {exc}")

    async def _restore(self) -> AuthState:
        try:
            tokens = await self.session_store.load_tokens()
            user = await self.session_store.load_user()
        except StorageCorruptError:
            await self._clear_quietly()
            raise

        if tokens is not None and user is not None and not self.is_expired(tokens):
            self._publish(
                AuthState(
                    is_loading=False,
                    is_authenticated=True,
                    user=user,
                    tokens=tokens,
                )
            )
            self._log.info("Restored session for sub=%s", mask_sensitive(user.sub))
            return self.state

        if tokens is not None or user is not None:
            if tokens is None:
                reason = "user info without tokens"
            elif user is None:
                reason = "tokens without user info"
            else:
                reason = "tokens expired"
            self._log.info("Discarding stored session (%s)", reason)
            await self.session_store.clear_all()
        return self._unauthenticated()

    async def _clear_quietly(self) -> None:
        try:
            await self.session_store.clear_all()
        except Exception as exc:
            self._log.warning("Could not clear stored session data: %s", exc)

    # ------------------------------------------------------------------ #
    # Login                                                              #
    # ------------------------------------------------------------------ #
    async def login(self, options: LoginOptions | None = None) -> AuthState:
        """Run one interactive authorization round-trip.  Never raises."""
        if self.state.is_loading:
            self._log.warning("login() called while another operation is in progress")
        self._publish(replace(self.state, is_loading=True, error=None))

        log = get_auth_logger(
            base_logger_name=_LOGGER_NAME,
            client_id=self.config.client_id,
            attempt_id=uuid.uuid4().hex,
            env_host=self._env_host,
        )
        try:
            result = await self._authorize(options, log)
            if result.type in _CANCELLED:
                log.info("Login %s by user", result.type.value)
                await self._drop_verifier(log)
                self._publish(replace(self.state, is_loading=False, error=None))
                return self.state
            tokens, user = await self._complete(result)
        except asyncio.CancelledError:
            await self._drop_verifier(log)
            self._unauthenticated()
            raise
        except Exception as exc:
            log.warning("Login failed: %s", exc)
            await self._drop_verifier(log)
            return self._unauthenticated(str(exc))

        self._publish(
            AuthState(is_loading=False, is_authenticated=True, user=user, tokens=tokens)
        )
        log.info("Login succeeded for sub=%s", mask_sensitive(user.sub))
        return self.state

    async def _authorize(
        self, options: LoginOptions | None, log: logging.LoggerAdapter
    ) -> BrowserResult:
        pkce = generate_pkce(crypto=self._crypto)
        await self.session_store.save_verifier(pkce.code_verifier)
        url = self.exchange_client.build_authorization_url(self.config, pkce, options)
        log.info("Opening authorization session")
        return await self.browser_session.open(url, self.config.redirect_uri or "")

    async def _complete(self, result: BrowserResult) -> tuple[TokenRecord, UserClaims]:
        if result.type is not BrowserResultType.SUCCESS or not result.url:
            message = None
            if result.error:
                message = f"Authentication was not successful: {result.error}"
            raise AuthenticationFailedError(message, result_type=result.type.value)

        code = _extract_code(result.url)
        tokens = await self.exchange_client.exchange_code(self.config, code)
        try:
            if not tokens.id_token:
                raise MissingIdentityTokenError()
            user = decode_id_token(tokens.id_token)
            if self.is_expired(tokens):
                raise AuthenticationFailedError(
                    "Received tokens are already expired", result_type=result.type.value
                )
            await self.session_store.save_user(user)
        except Exception:
            # the exchange already persisted the tokens
            await self._clear_quietly()
            raise
        return tokens, user

    async def _drop_verifier(self, log: logging.LoggerAdapter) -> None:
        try:
            await self.session_store.delete_verifier()
        except Exception as exc:
            log.warning("Could not delete PKCE verifier: %s", exc)

    # ------------------------------------------------------------------ #
    # Logout                                                             #
    # ------------------------------------------------------------------ #
    async def logout(self) -> AuthState:
        """Clear persisted session data and always end unauthenticated."""
        self._publish(replace(self.state, is_loading=True))
        try:
            await self.session_store.clear_all()
        except asyncio.CancelledError:
            self._unauthenticated()
            raise
        except Exception as exc:
            self._log.warning("Logout cleanup incomplete: %s", exc)
            return self._unauthenticated(str(exc))
        self._log.info("Logged out")
        return self._unauthenticated()

    # ------------------------------------------------------------------ #
    # Session helpers                                                    #
    # ------------------------------------------------------------------ #
    async def refresh_user(self) -> UserClaims:
        """Re-decode the current identity token and update ``state.user``.

        Raises
        ------
        NoActiveSessionError
            If the current state carries no identity token.
        """
        tokens = self.state.tokens
        if tokens is None or not tokens.id_token:
            raise NoActiveSessionError()
        user = decode_id_token(tokens.id_token)
        await self.session_store.save_user(user)
        self._publish(replace(self.state, user=user))
        return user

    async def get_access_token(self) -> str | None:
        """Return the stored access token if present and unexpired, else ``None``."""
        try:
            tokens = await self.session_store.load_tokens()
        except Exception as exc:
            self._log.warning("Could not read stored tokens: %s", exc)
            return None
        if tokens is None or self.is_expired(tokens):
            return None
        return tokens.access_token


def _extract_code(callback_url: str) -> str:
    query = parse_qs(urlparse(callback_url).query)
    code = query.get("code", [""])[0]
    if code:
        return code
    provider_error = query.get("error", [None])[0]
    if provider_error:
        description = query.get("error_description", [""])[0]
        detail = f"{provider_error}: {description}" if description else provider_error
        raise AuthorizationIncompleteError(
            f"Authorization failed: {detail}", provider_error=provider_error
        )
    raise AuthorizationIncompleteError()
