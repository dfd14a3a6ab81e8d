"""Typed, immutable records used by the session engine."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field, fields
from enum import Enum
from types import MappingProxyType
from typing import Any, Final

from pkce_session.auth.clock import Clock, default_clock, now_ms

DEFAULT_SCOPES: Final[tuple[str, ...]] = ("openid", "profile", "email")
DEFAULT_REDIRECT_URI: Final[str] = "http://127.0.0.1:8765/auth/callback"
# Tokens inside this window before expiry are treated as already expired.
EXPIRY_BUFFER_MS: Final[int] = 60_000
DEFAULT_EXPIRES_IN: Final[int] = 3600


@dataclass(frozen=True, slots=True)
class ClientConfiguration:
    """Per-session client settings; the redirect URI is resolved once."""

    env_url: str
    client_id: str
    client_secret: str | None = None
    redirect_uri: str | None = None
    scopes: tuple[str, ...] = DEFAULT_SCOPES
    app_scheme: str | None = None

    def __post_init__(self) -> None:
        if not self.env_url:
            raise ValueError("env_url is required")
        if not self.client_id:
            raise ValueError("client_id is required")
        scopes = tuple(self.scopes or ())
        if not scopes:
            raise ValueError("at least one scope is required")
        object.__setattr__(self, "scopes", scopes)
        object.__setattr__(self, "env_url", self.env_url.rstrip("/"))
        if not self.redirect_uri:
            if self.app_scheme:
                resolved = f"{self.app_scheme}://auth/callback"
            else:
                resolved = DEFAULT_REDIRECT_URI
            object.__setattr__(self, "redirect_uri", resolved)

    @property
    def authorization_endpoint(self) -> str:
        return f"{self.env_url}/oauth/authorize"

    @property
    def token_endpoint(self) -> str:
        return f"{self.env_url}/oauth/token"


@dataclass(frozen=True, slots=True)
class PKCEParameters:
    """Verifier/challenge pair generated fresh for one login attempt."""

    code_verifier: str
    code_challenge: str
    code_challenge_method: str = "S256"


@dataclass(frozen=True, slots=True)
class TokenRecord:
    """Snapshot of a token endpoint response.

    ``expires_at`` is epoch *milliseconds*, always computed from the local
    receipt time and never taken from the server as an absolute value.
    """

    access_token: str
    expires_in: int
    expires_at: int
    token_type: str = "Bearer"
    refresh_token: str | None = None
    id_token: str | None = None

    @classmethod
    def from_response(
        cls, data: Mapping[str, Any], *, clock: Clock = default_clock
    ) -> TokenRecord:
        """Build a record from a token endpoint JSON body received *now*."""
        raw_expires_in = data.get("expires_in")
        # 0 is a real lifetime; only an absent value gets the default
        expires_in = DEFAULT_EXPIRES_IN if raw_expires_in is None else int(raw_expires_in)
        return cls(
            access_token=data["access_token"],
            expires_in=expires_in,
            expires_at=now_ms(clock) + expires_in * 1000,
            token_type=data.get("token_type") or "Bearer",
            refresh_token=data.get("refresh_token"),
            id_token=data.get("id_token"),
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> TokenRecord:
        """Inverse of :meth:`to_dict`; raises ``KeyError``/``TypeError`` on bad shape."""
        return cls(
            access_token=str(data["access_token"]),
            expires_in=int(data["expires_in"]),
            expires_at=int(data["expires_at"]),
            token_type=str(data.get("token_type") or "Bearer"),
            refresh_token=data.get("refresh_token"),
            id_token=data.get("id_token"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    def is_expired(
        self, *, clock: Clock = default_clock, buffer_ms: int = EXPIRY_BUFFER_MS
    ) -> bool:
        """Return *True* once *clock* reaches ``expires_at - buffer_ms``."""
        return now_ms(clock) >= self.expires_at - buffer_ms


# Claim name -> attribute name for the standard OIDC claims we type.
_KNOWN_CLAIMS: Final[tuple[str, ...]] = (
    "sub",
    "email",
    "email_verified",
    "name",
    "given_name",
    "family_name",
    "picture",
)


@dataclass(frozen=True, slots=True)
class UserClaims:
    """Identity claims: typed standard fields plus a bag of everything else.

    Lookups by claim name (``claims["org_id"]``) see both halves.  A standard
    claim sent as JSON ``null`` is kept in ``extra`` so the mapping round-trips.
    """

    sub: str
    email: str | None = None
    email_verified: bool | None = None
    name: str | None = None
    given_name: str | None = None
    family_name: str | None = None
    picture: str | None = None
    extra: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "extra", MappingProxyType(dict(self.extra)))

    @classmethod
    def from_claims(cls, claims: Mapping[str, Any]) -> UserClaims:
        if not isinstance(claims.get("sub"), str) or not claims["sub"]:
            raise ValueError("claims must contain a string 'sub'")
        known = {k: claims[k] for k in _KNOWN_CLAIMS if claims.get(k) is not None}
        extra = {k: v for k, v in claims.items() if k not in known}
        return cls(**known, extra=extra)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = dict(self.extra)
        for name in _KNOWN_CLAIMS:
            value = getattr(self, name)
            if value is not None:
                data[name] = value
        return data

    def __getitem__(self, claim: str) -> Any:
        if claim in _KNOWN_CLAIMS:
            value = getattr(self, claim)
            if value is not None:
                return value
        return self.extra[claim]

    def __contains__(self, claim: object) -> bool:
        try:
            self[claim]  # type: ignore[index]
        except (KeyError, TypeError):
            return False
        return True

    def __iter__(self) -> Iterator[str]:
        return iter(self.to_dict())

    def get(self, claim: str, default: Any = None) -> Any:
        try:
            return self[claim]
        except KeyError:
            return default


@dataclass(frozen=True, slots=True)
class LoginOptions:
    """Optional parameters for one authorization request."""

    organization_id: str | None = None
    connection_id: str | None = None
    # Applied last: these override standard parameters of the same name.
    extra_params: Mapping[str, str] = field(default_factory=dict)


class BrowserResultType(str, Enum):
    SUCCESS = "success"
    CANCEL = "cancel"
    DISMISS = "dismiss"
    LOCKED = "locked"
    FAILURE = "failure"


@dataclass(frozen=True, slots=True)
class BrowserResult:
    """Outcome of one interactive browser session."""

    type: BrowserResultType
    url: str | None = None
    error: str | None = None


@dataclass(frozen=True, slots=True)
class AuthState:
    """Single snapshot exposed to consumers; replaced on every transition."""

    is_loading: bool = True
    is_authenticated: bool = False
    user: UserClaims | None = None
    tokens: TokenRecord | None = None
    error: str | None = None
