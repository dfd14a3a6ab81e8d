"""Shared fixtures: in-memory collaborators, a stub token endpoint and JWT helpers."""

from __future__ import annotations

import base64
import json
from typing import Any, Callable
from urllib.parse import parse_qs

import httpx
import pytest

from pkce_session.auth.exchange import TokenExchangeClient
from pkce_session.auth.machine import AuthStateMachine
from pkce_session.auth.models import BrowserResult, ClientConfiguration
from pkce_session.auth.store import SessionStore

# Frozen at 2023-11-14T22:13:20Z
NOW = 1_700_000_000.0
NOW_MS = int(NOW * 1000)


def pytest_configure(config):
    """Add integration marker."""
    config.addinivalue_line(
        "markers", "integration: mark test as requiring integration with real services"
    )


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless explicitly requested.

    Tests marked with 'ci_safe' are always run (even inside the integration
    directory) because they stub all external calls and are safe for CI.
    """
    if not config.getoption("--integration", default=False):
        skip_integration = pytest.mark.skip(reason="Need --integration option to run")
        for item in items:
            if "integration" in item.keywords and "ci_safe" not in item.keywords:
                item.add_marker(skip_integration)


def pytest_addoption(parser):
    """Add integration option to pytest."""
    parser.addoption(
        "--integration",
        action="store_true",
        default=False,
        help="run integration tests",
    )


# --------------------------------------------------------------------------- #
# Fakes                                                                       #
# --------------------------------------------------------------------------- #
class MemorySecureStore:
    """Dict-backed SecureStore; keys in ``fail_delete`` raise on delete."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.fail_delete: set[str] = set()
        self.fail_get: set[str] = set()

    async def get_item(self, key: str) -> str | None:
        if key in self.fail_get:
            raise OSError(f"keychain unavailable for {key}")
        return self.data.get(key)

    async def set_item(self, key: str, value: str) -> None:
        self.data[key] = value

    async def delete_item(self, key: str) -> None:
        if key in self.fail_delete:
            raise OSError(f"cannot delete {key}")
        self.data.pop(key, None)


class FakeBrowserSession:
    """Return a canned BrowserResult and remember what was opened."""

    def __init__(self, result: BrowserResult | None = None) -> None:
        self.result = result
        self.calls: list[tuple[str, str]] = []

    async def open(self, url: str, redirect_uri: str) -> BrowserResult:
        self.calls.append((url, redirect_uri))
        assert self.result is not None, "test did not configure a browser result"
        return self.result


class TokenEndpoint:
    """Stub token endpoint used through ``httpx.MockTransport``."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.status_code = 200
        self.payload: Any = {
            "access_token": "access-xyz",
            "refresh_token": "refresh-xyz",
            "token_type": "Bearer",
            "expires_in": 3600,
        }

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if isinstance(self.payload, str):
            return httpx.Response(self.status_code, text=self.payload)
        return httpx.Response(self.status_code, json=self.payload)

    @property
    def form(self) -> dict[str, str]:
        body = parse_qs(self.requests[-1].content.decode("ascii"))
        return {k: v[0] for k, v in body.items()}


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def encode_id_token(claims: dict[str, Any]) -> str:
    """Build an *unsigned* three-segment JWT carrying *claims*."""
    header = _b64url(json.dumps({"alg": "RS256", "typ": "JWT"}).encode())
    payload = _b64url(json.dumps(claims).encode())
    return f"{header}.{payload}.c2lnbmF0dXJl"


# --------------------------------------------------------------------------- #
# Fixtures                                                                    #
# --------------------------------------------------------------------------- #
@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def fake_clock() -> Callable[[], float]:
    return lambda: NOW


@pytest.fixture
def now_ms() -> int:
    return NOW_MS


@pytest.fixture
def make_id_token() -> Callable[[dict[str, Any]], str]:
    return encode_id_token


@pytest.fixture
def config() -> ClientConfiguration:
    return ClientConfiguration(
        env_url="https://auth.example.test/",
        client_id="skc_test_client",
        redirect_uri="myapp://auth/callback",
    )


@pytest.fixture
def secure_store() -> MemorySecureStore:
    return MemorySecureStore()


@pytest.fixture
def session_store(secure_store: MemorySecureStore) -> SessionStore:
    return SessionStore(secure_store)


@pytest.fixture
def token_endpoint() -> TokenEndpoint:
    return TokenEndpoint()


@pytest.fixture
def exchange_client(
    session_store: SessionStore,
    token_endpoint: TokenEndpoint,
    fake_clock: Callable[[], float],
) -> TokenExchangeClient:
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(token_endpoint.handler))
    return TokenExchangeClient(session_store, http_client=http_client, clock=fake_clock)


@pytest.fixture
def browser() -> FakeBrowserSession:
    return FakeBrowserSession()


@pytest.fixture
def machine(
    config: ClientConfiguration,
    session_store: SessionStore,
    exchange_client: TokenExchangeClient,
    browser: FakeBrowserSession,
    fake_clock: Callable[[], float],
) -> AuthStateMachine:
    return AuthStateMachine(
        config,
        session_store=session_store,
        exchange_client=exchange_client,
        browser_session=browser,
        clock=fake_clock,
    )
