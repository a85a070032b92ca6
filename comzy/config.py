"""Configuration management using pydantic-settings."""

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from comzy.exceptions import FatalConfigurationError


class Settings(BaseSettings):
    """Client settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="COMZY_",
        case_sensitive=False,
        extra="ignore",
    )

    relay_url: str = Field(default="wss://api.comzy.io:8191", description="Relay websocket URL")
    relay_domain: str = Field(default="comzy.io", description="Domain public aliases live under")
    login_url: str = Field(default="https://portal.comzy.io", description="Where users obtain a token")
    local_host: str = Field(default="localhost", description="Host the local service listens on")
    default_port: int = Field(default=3000, ge=1, le=65535, description="Port used when none is given")
    keepalive_interval: float = Field(default=20.0, gt=0, description="Seconds between ping frames")
    reconnect_delay: float = Field(default=5.0, ge=0, description="Seconds to wait before reconnecting")
    anonymous_lifetime: float = Field(default=3600.0, gt=0, description="Anonymous session lifetime in seconds")
    request_timeout: float | None = Field(default=None, gt=0, description="Local request timeout, None for no limit")
    max_message_size: int = Field(default=0, ge=0, description="Largest relay frame accepted, 0 for no limit")
    config_dir: Path | None = Field(default=None, description="Directory holding the stored token")
    log_level: str = Field(default="INFO", description="Logging level")

    def resolve_config_dir(self) -> Path:
        """Return the configured directory, falling back to ~/.comzy."""
        if self.config_dir is not None:
            return self.config_dir
        try:
            return Path.home() / ".comzy"
        except RuntimeError as exc:
            raise FatalConfigurationError(f"Failed to get home directory: {exc}") from exc

    def public_url(self, alias: str) -> str:
        return f"https://{alias}.{self.relay_domain}"


@lru_cache
def get_settings() -> Settings:
    """Get the application settings instance."""
    return Settings()
