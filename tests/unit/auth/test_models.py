"""
Unit tests for the session records.

Coverage:
* ClientConfiguration defaults, validation and redirect URI resolution
* TokenRecord expiry policy with the 60s buffer (fake clock)
* TokenRecord built from a token response uses local receipt time
* UserClaims merged access over known and extra claims
"""

from __future__ import annotations

import dataclasses
from typing import Callable

import pytest

from pkce_session.auth.models import (
    DEFAULT_REDIRECT_URI,
    ClientConfiguration,
    TokenRecord,
    UserClaims,
)


def fake_clock_factory(now: float) -> Callable[[], float]:
    """Return a callable clock that always returns *now*."""
    return lambda now=now: now


def _tokens(expires_at: int) -> TokenRecord:
    return TokenRecord(access_token="at", expires_in=3600, expires_at=expires_at)


# --------------------------------------------------------------------------- #
# ClientConfiguration                                                         #
# --------------------------------------------------------------------------- #
def test_config_defaults() -> None:
    cfg = ClientConfiguration(env_url="https://auth.example.test/", client_id="cid")
    assert cfg.scopes == ("openid", "profile", "email")
    assert cfg.redirect_uri == DEFAULT_REDIRECT_URI
    assert cfg.client_secret is None
    assert cfg.authorization_endpoint == "https://auth.example.test/oauth/authorize"
    assert cfg.token_endpoint == "https://auth.example.test/oauth/token"


def test_config_redirect_from_app_scheme() -> None:
    cfg = ClientConfiguration(env_url="https://a.test", client_id="cid", app_scheme="myapp")
    assert cfg.redirect_uri == "myapp://auth/callback"


def test_config_explicit_redirect_wins_and_is_frozen() -> None:
    cfg = ClientConfiguration(
        env_url="https://a.test",
        client_id="cid",
        redirect_uri="https://app.test/cb",
        app_scheme="myapp",
    )
    assert cfg.redirect_uri == "https://app.test/cb"
    with pytest.raises(dataclasses.FrozenInstanceError):
        cfg.redirect_uri = "other"  # type: ignore[misc]


@pytest.mark.parametrize(
    "kwargs",
    [
        {"env_url": "https://a.test", "client_id": "cid", "scopes": ()},
        {"env_url": "https://a.test", "client_id": ""},
        {"env_url": "", "client_id": "cid"},
    ],
)
def test_config_rejects_invalid(kwargs: dict) -> None:
    with pytest.raises(ValueError):
        ClientConfiguration(**kwargs)


def test_config_accepts_scope_list() -> None:
    cfg = ClientConfiguration(env_url="https://a.test", client_id="cid", scopes=["openid"])  # type: ignore[arg-type]
    assert cfg.scopes == ("openid",)


# --------------------------------------------------------------------------- #
# Expiry policy                                                               #
# --------------------------------------------------------------------------- #
def test_token_outside_buffer_not_expired(now_ms: int, fake_clock) -> None:
    assert _tokens(now_ms + 120_000).is_expired(clock=fake_clock) is False


def test_token_inside_buffer_is_expired(now_ms: int, fake_clock) -> None:
    assert _tokens(now_ms + 30_000).is_expired(clock=fake_clock) is True


def test_token_in_past_is_expired(now_ms: int, fake_clock) -> None:
    assert _tokens(now_ms - 1).is_expired(clock=fake_clock) is True


def test_token_exactly_at_buffer_edge_is_expired(now_ms: int, fake_clock) -> None:
    assert _tokens(now_ms + 60_000).is_expired(clock=fake_clock) is True
    assert _tokens(now_ms + 60_001).is_expired(clock=fake_clock) is False


# --------------------------------------------------------------------------- #
# TokenRecord from response                                                   #
# --------------------------------------------------------------------------- #
def test_from_response_uses_local_receipt_time() -> None:
    rec = TokenRecord.from_response(
        {
            "access_token": "at",
            "refresh_token": "rt",
            "id_token": "a.b.c",
            "token_type": "Bearer",
            "expires_in": 300,
            "expires_at": 1,  # server-supplied absolute values are ignored
        },
        clock=fake_clock_factory(1000.0),
    )
    assert rec.expires_at == 1_000_000 + 300_000
    assert rec.refresh_token == "rt"
    assert rec.id_token == "a.b.c"


def test_from_response_defaults() -> None:
    rec = TokenRecord.from_response({"access_token": "at"}, clock=fake_clock_factory(0.0))
    assert rec.token_type == "Bearer"
    assert rec.expires_in == 3600
    assert rec.refresh_token is None and rec.id_token is None


def test_from_response_zero_lifetime_is_kept(now_ms: int, fake_clock) -> None:
    rec = TokenRecord.from_response({"access_token": "at", "expires_in": 0}, clock=fake_clock)
    assert rec.expires_in == 0
    assert rec.expires_at == now_ms
    assert rec.is_expired(clock=fake_clock) is True


def test_from_response_null_lifetime_uses_default() -> None:
    rec = TokenRecord.from_response(
        {"access_token": "at", "expires_in": None}, clock=fake_clock_factory(0.0)
    )
    assert rec.expires_in == 3600


def test_token_record_dict_snapshot() -> None:
    rec = TokenRecord(access_token="at", expires_in=60, expires_at=5, refresh_token="rt")
    assert TokenRecord.from_dict(rec.to_dict()) == rec


# --------------------------------------------------------------------------- #
# UserClaims                                                                  #
# --------------------------------------------------------------------------- #
def test_claims_split_known_and_extra() -> None:
    claims = UserClaims.from_claims(
        {
            "sub": "u1",
            "email": "a@b.com",
            "email_verified": True,
            "given_name": "Ada",
            "org_id": "org_42",
            "roles": ["admin"],
        }
    )
    assert claims.sub == "u1"
    assert claims.email_verified is True
    assert claims.given_name == "Ada"
    assert dict(claims.extra) == {"org_id": "org_42", "roles": ["admin"]}


def test_claims_merged_access() -> None:
    claims = UserClaims.from_claims({"sub": "u1", "email": "a@b.com", "org_id": "org_42"})
    assert claims["sub"] == "u1"
    assert claims["org_id"] == "org_42"
    assert "email" in claims and "org_id" in claims
    assert "name" not in claims
    assert claims.get("name") is None
    assert claims.get("missing", "fallback") == "fallback"
    with pytest.raises(KeyError):
        claims["missing"]
    assert sorted(claims) == ["email", "org_id", "sub"]


def test_claims_to_dict_restores_claim_mapping() -> None:
    claims_in = {"sub": "u1", "name": "Ada Lovelace", "tenant": {"id": 7}}
    assert UserClaims.from_claims(claims_in).to_dict() == claims_in


def test_claims_keep_explicit_nulls() -> None:
    claims_in = {"sub": "u1", "email": None, "name": "Ada", "picture": None}
    claims = UserClaims.from_claims(claims_in)
    assert claims.email is None
    assert claims["email"] is None
    assert "email" in claims
    assert "family_name" not in claims
    assert claims.to_dict() == claims_in


def test_claims_require_subject() -> None:
    with pytest.raises(ValueError):
        UserClaims.from_claims({"email": "a@b.com"})
    with pytest.raises(ValueError):
        UserClaims.from_claims({"sub": 42})


def test_claims_extra_is_read_only() -> None:
    claims = UserClaims.from_claims({"sub": "u1", "org_id": "o"})
    with pytest.raises(TypeError):
        claims.extra["org_id"] = "other"  # type: ignore[index]
