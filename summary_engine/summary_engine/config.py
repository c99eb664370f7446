"""Configuration for the summary engine."""

from __future__ import annotations

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class SummarySettings(BaseSettings):
    """All configuration for LLM summarisation.

    Values are loaded from environment variables prefixed with
    ``SUMMARY_ENGINE_`` or from a ``.env`` file in the working directory.
    """

    model_config = SettingsConfigDict(env_prefix="SUMMARY_ENGINE_", env_file=".env", extra="ignore")

    # --- LLM integration (feature-flagged) ---
    llm_enabled: bool = True
    llm_api_key: SecretStr | None = None
    llm_model: str = "claude-sonnet-4-5-20250929"
    llm_timeout: float = 60.0
    llm_max_tokens: int = 400
    llm_temperature: float = 0.3

    # --- batching ---
    min_batch_chars: int = 30  # serialized batches shorter than this are not sent

    # --- comment ---
    prompt_key: str = "explain_pr_system"


def load_summary_settings() -> SummarySettings:
    """Factory helper that creates *SummarySettings* from the environment."""
    return SummarySettings()
