"""Application configuration loaded from environment variables."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from reposter.exceptions import ConfigurationError

_DEFAULT_SECRET_KEY = "change-me-in-production"


class Settings(BaseSettings):
    """Reposter application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Core
    secret_key: str = _DEFAULT_SECRET_KEY
    debug: bool = False

    # Database
    database_url: str = "sqlite+aiosqlite:///data/db/reposter.db"

    # Server
    host: str = "0.0.0.0"
    port: int = Field(default=8000, ge=1, le=65535)
    base_url: str = "http://localhost:8000"

    # Telegram
    telegram_bot_token: str = ""
    telegram_bot_username: str = ""

    # Threads OAuth app
    threads_app_id: str = ""
    threads_app_secret: str = ""
    threads_redirect_uri: str = ""
    threads_api_base_url: str = "https://graph.threads.net"
    threads_authorize_url: str = "https://threads.net/oauth/authorize"
    threads_scopes: list[str] = Field(
        default_factory=lambda: ["threads_basic", "threads_content_publish"]
    )
    threads_fetch_limit: int = Field(default=25, ge=1, le=100)
    threads_fetch_max_pages: int = Field(default=1, ge=1)
    http_timeout_seconds: float = Field(default=15.0, gt=0)
    oauth_state_ttl_seconds: int = Field(default=600, ge=1)

    # Polling
    poll_interval_seconds: float = Field(default=60.0, ge=1.0)
    poll_max_concurrency: int = Field(default=4, ge=1)

    # Process roles
    run_bot: bool = True
    run_scheduler: bool = True

    def validate_runtime_config(self) -> None:
        """Validate settings the process cannot start without.

        Raises:
            ConfigurationError: listing every missing or insecure value.
        """
        violations: list[str] = []
        required = {
            "TELEGRAM_BOT_TOKEN": self.telegram_bot_token,
            "TELEGRAM_BOT_USERNAME": self.telegram_bot_username,
            "THREADS_APP_ID": self.threads_app_id,
            "THREADS_APP_SECRET": self.threads_app_secret,
            "THREADS_REDIRECT_URI": self.threads_redirect_uri,
        }
        for name, value in required.items():
            if not value.strip():
                violations.append(f"{name} must be set")

        if not self.debug and (
            self.secret_key == _DEFAULT_SECRET_KEY or len(self.secret_key) < 32
        ):
            violations.append(
                "SECRET_KEY must be overridden with a high-entropy value (>=32 chars)"
            )

        if violations:
            joined = "; ".join(violations)
            raise ConfigurationError(f"Invalid configuration: {joined}")

    def bot_start_url(self, payload: str) -> str:
        """Deep link that opens the bot chat with a ``/start <payload>`` command."""
        return f"https://t.me/{self.telegram_bot_username}?start={payload}"
