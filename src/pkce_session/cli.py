"""pkce-session command line.

This is the application's composition root: it performs the one-time browser
setup, wires the default collaborators (disk secure store, loopback browser
session, httpx token exchange) and runs one command against the restored
session.

Example
-------
    PKCE_SESSION_ENV_URL=https://auth.example.com \\
    PKCE_SESSION_CLIENT_ID=skc_123 \\
    pkce-session login --organization-id org_42
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import webbrowser
from typing import Sequence

from pkce_session.auth.browser import configure_browser
from pkce_session.auth.exchange import TokenExchangeClient
from pkce_session.auth.machine import AuthStateMachine
from pkce_session.auth.models import AuthState, ClientConfiguration, LoginOptions
from pkce_session.auth.store import DiskSecureStore, SessionStore
from pkce_session.servers.callback import LoopbackBrowserSession
from pkce_session.utils.environment import config_from_env

logger = logging.getLogger("pkce-session.cli")

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2


def _parse_params(pairs: Sequence[str]) -> dict[str, str]:
    params: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"expected key=value, got {pair!r}")
        params[key] = value
    return params


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pkce-session",
        description="OAuth 2.0 Authorization Code + PKCE session manager",
    )
    parser.add_argument("--log-level", default="WARNING", help="logging level (default: WARNING)")
    parser.add_argument("--storage-dir", default=None, help="override PKCE_SESSION_STORAGE_DIR")
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="seconds to wait for the browser redirect (default: wait forever)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    login = sub.add_parser("login", help="sign in through the browser")
    login.add_argument("--organization-id")
    login.add_argument("--connection-id")
    login.add_argument(
        "--param",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="extra authorization parameter; overrides standard ones",
    )

    sub.add_parser("logout", help="clear the stored session")
    sub.add_parser("status", help="show whether a session is active")
    sub.add_parser("token", help="print the access token if still valid")
    sub.add_parser("whoami", help="print identity claims as JSON")
    return parser


def build_machine(
    config: ClientConfiguration,
    *,
    storage_dir: str | None = None,
    timeout: float | None = None,
) -> AuthStateMachine:
    """Wire the default collaborators; the caller still runs ``restore()``."""
    session_store = SessionStore(DiskSecureStore(storage_dir))
    return AuthStateMachine(
        config,
        session_store=session_store,
        exchange_client=TokenExchangeClient(session_store),
        browser_session=LoopbackBrowserSession(timeout=timeout),
    )


def _log_transition(state: AuthState) -> None:
    logger.debug(
        "state loading=%s authenticated=%s error=%s",
        state.is_loading,
        state.is_authenticated,
        state.error,
    )


async def run_command(args: argparse.Namespace, machine: AuthStateMachine) -> int:
    """Restore the session and execute ``args.command``; returns an exit code."""
    machine.subscribe(_log_transition)
    state = await machine.restore()
    if state.error:
        print(f"warning: {state.error}", file=sys.stderr)

    if args.command == "login":
        options = LoginOptions(
            organization_id=args.organization_id,
            connection_id=args.connection_id,
            extra_params=_parse_params(args.param),
        )
        state = await machine.login(options)
        if state.is_authenticated and state.user is not None:
            print(f"Logged in as {state.user.email or state.user.sub}")
            return EXIT_OK
        if state.error:
            print(f"Login failed: {state.error}", file=sys.stderr)
            return EXIT_FAILED
        print("Login cancelled.")
        return EXIT_FAILED

    if args.command == "logout":
        state = await machine.logout()
        if state.error:
            print(f"Logged out locally; {state.error}", file=sys.stderr)
            return EXIT_FAILED
        print("Logged out.")
        return EXIT_OK

    if args.command == "status":
        if state.is_authenticated and state.user is not None:
            print(f"authenticated: {state.user.sub}")
            return EXIT_OK
        print("not authenticated")
        return EXIT_FAILED

    if args.command == "token":
        token = await machine.get_access_token()
        if token is None:
            print("no valid access token", file=sys.stderr)
            return EXIT_FAILED
        print(token)
        return EXIT_OK

    if args.command == "whoami":
        if state.user is None:
            print("not authenticated", file=sys.stderr)
            return EXIT_FAILED
        print(json.dumps(state.user.to_dict(), indent=2, sort_keys=True))
        return EXIT_OK

    raise ValueError(f"unknown command {args.command!r}")


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    try:
        config = config_from_env()
        if args.command == "login":
            _parse_params(args.param)
    except ValueError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return EXIT_CONFIG

    try:
        configure_browser()
    except webbrowser.Error as exc:
        logger.warning("No usable browser: %s", exc)
    machine = build_machine(config, storage_dir=args.storage_dir, timeout=args.timeout)
    return asyncio.run(run_command(args, machine))


if __name__ == "__main__":
    sys.exit(main())
