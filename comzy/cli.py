"""Command line entry point."""

import asyncio
import re
import sys
from collections.abc import Coroutine
from typing import Any

from comzy.client import TunnelClient
from comzy.config import Settings, get_settings
from comzy.credentials import CredentialStore
from comzy.exceptions import FatalConfigurationError
from comzy.logging import get_logger, setup_logging

if sys.platform != "win32":
    import uvloop

logger = get_logger(__name__)

USAGE = """
Comzy - Secure tunnel to localhost

Usage:
  comzy [port]              Start tunnel on specified port (default: 3000)
  comzy login               Login with authentication token
  comzy logout              Logout and remove stored token
  comzy status              Show current authentication status
  comzy help                Show this help message

Examples:
  comzy 8080                Start tunnel on port 8080
  comzy                     Start tunnel on port 3000
  comzy login               Login with your token
  comzy logout              Logout from current session
"""

_PORT_RE = re.compile(r"[+-]?[0-9]+")


def parse_port(value: str) -> int | None:
    """Return the port number, or None if it is not an integer in 1-65535."""
    if not _PORT_RE.fullmatch(value):
        return None
    port = int(value)
    return port if 1 <= port <= 65535 else None


def run_event_loop(coro: Coroutine[Any, Any, None]) -> None:
    if sys.platform == "win32":
        asyncio.run(coro)
    else:
        uvloop.run(coro)


def start_tunnel(port: int, settings: Settings) -> int:
    token = CredentialStore.from_settings(settings).get_token()
    client = TunnelClient(port, token=token, settings=settings)
    try:
        run_event_loop(client.run())
    except KeyboardInterrupt:
        logger.info("Shutting down tunnel...")
    return 0


def login(store: CredentialStore, settings: Settings) -> int:
    try:
        token = input("Enter your authentication token: ").strip()
    except EOFError:
        logger.error("Login failed: no token entered")
        return 1

    if token:
        store.save_token(token)
        logger.info("Authentication successful")
    else:
        logger.warning("No token provided. Running in anonymous mode.")
        logger.info(f"To avoid connection timeout, login at: {settings.login_url}")
    return 0


def logout(store: CredentialStore) -> int:
    if store.remove_token():
        logger.info("Logged out successfully")
    else:
        logger.warning("No active session found")
    return 0


def status(store: CredentialStore, settings: Settings) -> int:
    token = store.get_token()
    if token:
        logger.info("Authenticated")
        logger.info(f"Token: {token[:8]}..." if len(token) > 8 else f"Token: {token}")
    else:
        logger.warning("Not authenticated (anonymous mode)")
        logger.info(f"Login at: {settings.login_url}")
    return 0


def dispatch(args: list[str], settings: Settings) -> int:
    if not args:
        return start_tunnel(settings.default_port, settings)

    command = args[0]
    if command in ("help", "--help", "-h"):
        print(USAGE)
        return 0
    if command == "login":
        return login(CredentialStore.from_settings(settings), settings)
    if command == "logout":
        return logout(CredentialStore.from_settings(settings))
    if command == "status":
        return status(CredentialStore.from_settings(settings), settings)

    port = parse_port(command)
    if port is None:
        logger.error("Invalid port number. Use a port between 1-65535")
        return 1
    return start_tunnel(port, settings)


def main(argv: list[str] | None = None) -> int:
    """Entry point for the comzy command."""
    args = sys.argv[1:] if argv is None else argv
    settings = get_settings()
    setup_logging(settings.log_level)

    try:
        return dispatch(args, settings)
    except FatalConfigurationError as exc:
        logger.error(f"Fatal error: {exc}")
        return 1
