"""Stored authentication token."""

import os
from pathlib import Path

from comzy.config import Settings
from comzy.exceptions import FatalConfigurationError
from comzy.logging import get_logger

logger = get_logger(__name__)

TOKEN_FILENAME = ".user"


class CredentialStore:
    """A single token kept in a private file inside the config directory."""

    def __init__(self, directory: Path) -> None:
        self.directory = directory
        self.path = directory / TOKEN_FILENAME

    @classmethod
    def from_settings(cls, settings: Settings) -> "CredentialStore":
        return cls(settings.resolve_config_dir())

    def get_token(self) -> str:
        """Return the stored token, or an empty string for anonymous mode."""
        try:
            return self.path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return ""
        except OSError as exc:
            logger.debug(f"Could not read token from {self.path}: {exc}")
            return ""

    def save_token(self, token: str) -> None:
        try:
            self.directory.mkdir(mode=0o755, parents=True, exist_ok=True)
            fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(token.strip())
        except OSError as exc:
            raise FatalConfigurationError(f"Failed to save token to {self.path}: {exc}") from exc

    def remove_token(self) -> bool:
        """Delete the stored token. Returns False when there was none."""
        try:
            self.path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise FatalConfigurationError(f"Failed to remove {self.path}: {exc}") from exc
        return True
