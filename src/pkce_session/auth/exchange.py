"""Authorization request construction and code-for-token exchange.

The exchange is **single-use**: once the token endpoint accepted a code the
stored verifier is deleted so the same verifier can never be replayed.

No secrets (codes, verifiers, tokens, client secret) are written to logs.
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import urlencode

import httpx

from pkce_session.auth.clock import Clock, default_clock
from pkce_session.auth.errors import MissingVerifierError, TokenExchangeFailedError
from pkce_session.auth.models import (
    ClientConfiguration,
    LoginOptions,
    PKCEParameters,
    TokenRecord,
)
from pkce_session.auth.store import SessionStore

_LOG = logging.getLogger("pkce-session.auth.exchange")

_BODY_PREVIEW = 200


def build_authorization_url(
    config: ClientConfiguration,
    pkce: PKCEParameters,
    options: LoginOptions | None = None,
) -> str:
    """Return the authorization endpoint URL for one login attempt.

    ``options.extra_params`` are applied last and override any standard
    parameter of the same name (last write wins).
    """
    params: dict[str, str] = {
        "client_id": config.client_id,
        "redirect_uri": config.redirect_uri or "",
        "response_type": "code",
        "scope": " ".join(config.scopes),
        "code_challenge": pkce.code_challenge,
        "code_challenge_method": pkce.code_challenge_method,
    }
    if options is not None:
        if options.organization_id:
            params["organization_id"] = options.organization_id
        if options.connection_id:
            params["connection_id"] = options.connection_id
        params.update(options.extra_params)
    return f"{config.authorization_endpoint}?{urlencode(params)}"


class TokenExchangeClient:
    """Execute the authorization-code grant against the token endpoint."""

    def __init__(
        self,
        session_store: SessionStore,
        *,
        http_client: httpx.AsyncClient | None = None,
        clock: Clock = default_clock,
        timeout: float = 30.0,
    ) -> None:
        self.session_store = session_store
        self._http_client = http_client
        self._clock = clock
        self._timeout = timeout

    build_authorization_url = staticmethod(build_authorization_url)

    async def _post(self, url: str, data: dict[str, str]) -> httpx.Response:
        headers = {"Accept": "application/json"}
        if self._http_client is not None:
            return await self._http_client.post(
                url, data=data, headers=headers, timeout=self._timeout
            )
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await client.post(url, data=data, headers=headers)

    async def exchange_code(self, config: ClientConfiguration, code: str) -> TokenRecord:
        """Exchange *code* for tokens, persist them and drop the verifier.

        Raises
        ------
        MissingVerifierError
            If no verifier is stored; no request is sent in that case.
        TokenExchangeFailedError
            On transport errors, non-2xx responses or unusable bodies.
        """
        verifier = await self.session_store.load_verifier()
        if not verifier:
            raise MissingVerifierError()

        payload: dict[str, str] = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": config.redirect_uri or "",
            "client_id": config.client_id,
            "code_verifier": verifier,
        }
        if config.client_secret:
            payload["client_secret"] = config.client_secret  # noqa: S105

        try:
            resp = await self._post(config.token_endpoint, payload)
        except httpx.HTTPError as exc:
            raise TokenExchangeFailedError(f"Token request failed: {exc}") from exc

        if not resp.is_success:
            _LOG.warning(
                "Token endpoint returned %s: %s",
                resp.status_code,
                resp.text[:_BODY_PREVIEW],
            )
            raise TokenExchangeFailedError(status_code=resp.status_code, body=resp.text)

        try:
            data: Any = resp.json()
        except ValueError:
            raise TokenExchangeFailedError(
                "Token response is not valid JSON",
                status_code=resp.status_code,
                body=resp.text,
            ) from None
        if not isinstance(data, dict) or not data.get("access_token"):
            raise TokenExchangeFailedError(
                "Token response missing access_token",
                status_code=resp.status_code,
                body=resp.text,
            )

        try:
            tokens = TokenRecord.from_response(data, clock=self._clock)
        except (TypeError, ValueError) as exc:
            raise TokenExchangeFailedError(
                f"Token response is invalid: {exc}",
                status_code=resp.status_code,
                body=resp.text,
            ) from exc
        await self.session_store.save_tokens(tokens)
        await self.session_store.delete_verifier()
        _LOG.info(
            "Exchanged authorization code (expires in %ss, id_token=%s)",
            tokens.expires_in,
            "yes" if tokens.id_token else "no",
        )
        return tokens
