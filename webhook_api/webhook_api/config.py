"""API-layer configuration loaded from environment variables."""

from __future__ import annotations

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class APISettings(BaseSettings):
    """FastAPI application settings.

    All values can be overridden via environment variables prefixed with
    ``API_`` (e.g. ``API_GITHUB_APP_ID=1234``) or through a ``.env`` file in
    the working directory.
    """

    model_config = SettingsConfigDict(
        env_prefix="API_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False

    # Async SQLAlchemy connection string (asyncpg or aiosqlite driver).
    database_url: str = "sqlite+aiosqlite:///./explainthispr.db"

    # Create missing tables on start-up.
    auto_create_tables: bool = True

    # GitHub App credentials.
    github_app_id: str = ""
    github_private_key: SecretStr = SecretStr("")
    github_webhook_secret: SecretStr = SecretStr("")
    github_api_url: str = "https://api.github.com"
    github_timeout: float = 30.0

    # Bot identity and triggers.
    bot_login: str = "explainthispr[bot]"
    trigger_label: str = "explainthispr"
    trigger_comment: str = "@explainthispr"
    feedback_url: str = "https://tally.so/r/3jZG9E"

    # Maximum characters of patch text per LLM batch.
    chunk_char_limit: int = 9000

    # Stripe billing integration.
    billing_enabled: bool = False
    stripe_secret_key: SecretStr = SecretStr("")
    stripe_webhook_secret: SecretStr = SecretStr("")
    stripe_price_id_starter: str = ""
    stripe_price_id_pro: str = ""

    # Structured JSON logging for log aggregation.
    structured_logging: bool = False


def load_api_settings() -> APISettings:
    """Construct settings from the environment / ``.env`` file."""
    return APISettings()
