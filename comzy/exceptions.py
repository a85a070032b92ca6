"""Tunnel client exception classes."""


class ComzyError(Exception):
    """Base exception for the tunnel client."""

    pass


class MalformedMessage(ComzyError):
    """A relay message matches no known wire schema."""

    pass


class LocalDispatchError(ComzyError):
    """The local HTTP call could not be built or completed."""

    def __init__(self, message: str, method: str, path: str):
        self.method = method
        self.path = path
        super().__init__(f"{method} {path} failed: {message}")


class ConnectionLost(ComzyError):
    """The relay connection could not be opened, read or written."""

    pass


class FatalConfigurationError(ComzyError):
    """The local environment cannot support a tunnel."""

    pass
