"""The single live tunnel connection and its state."""

from dataclasses import dataclass
from enum import Enum

import aiohttp

from comzy.writer import OutboundWriter


class AuthMode(str, Enum):
    """Whether the tunnel runs with a stored token."""

    AUTHENTICATED = "authenticated"
    ANONYMOUS = "anonymous"


class SessionStatus(str, Enum):
    """
    Registration status of a session.

    State transitions:
        CONNECTING -> REGISTERED (relay acknowledged registration)
        CONNECTING/REGISTERED -> DISCONNECTED (read or write failed)
    """

    CONNECTING = "connecting"
    REGISTERED = "registered"
    DISCONNECTED = "disconnected"


@dataclass
class Session:
    """One relay connection. A reconnect creates a new Session."""

    ws: aiohttp.ClientWebSocketResponse
    writer: OutboundWriter
    mode: AuthMode
    port: int
    status: SessionStatus = SessionStatus.CONNECTING
    alias: str | None = None

    @property
    def registered(self) -> bool:
        return self.status is SessionStatus.REGISTERED
