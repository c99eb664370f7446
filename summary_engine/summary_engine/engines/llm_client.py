"""LLM integration, feature-flagged.

When ``SUMMARY_ENGINE_LLM_ENABLED=false`` or no API key is configured,
:meth:`LLMClient.complete` raises :class:`LLMDisabledError` without making
a network call.  Otherwise the client calls the configured Anthropic model
through the async SDK so that several batches can be in flight at once.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from summary_engine.config import SummarySettings

logger = logging.getLogger(__name__)


class LLMDisabledError(Exception):
    """Raised when an LLM call is attempted but the feature is disabled."""


class LLMClient:
    """Thin wrapper around the Anthropic async SDK.

    Parameters
    ----------
    settings:
        Summary engine settings providing the API key and timeout.
    client:
        Pre-built SDK client, used instead of constructing one from
        *settings* (tests inject fakes here).
    """

    def __init__(self, settings: SummarySettings, client: Any = None) -> None:
        self._enabled = settings.llm_enabled
        self._timeout = settings.llm_timeout
        self._client: Any = client

        if self._client is None and self._enabled:
            api_key = settings.llm_api_key.get_secret_value() if settings.llm_api_key else None
            if api_key:
                import anthropic

                self._client = anthropic.AsyncAnthropic(api_key=api_key, timeout=self._timeout)
                logger.info("LLM client initialised (model=%s, timeout=%.1fs)", settings.llm_model, self._timeout)
            else:
                logger.warning("LLM enabled but no API key configured -- summaries disabled")
                self._enabled = False

    @property
    def enabled(self) -> bool:
        return self._enabled and self._client is not None

    async def complete(
        self,
        system: str,
        user: str,
        *,
        model: str,
        max_tokens: int,
        temperature: float,
    ) -> str:
        """Execute a single completion and return its text.

        Raises
        ------
        LLMDisabledError
            If no client is available.
        Exception
            Any SDK or network error is propagated to the caller.
        """
        if not self.enabled:
            raise LLMDisabledError("No LLM API key available or LLM summaries are disabled.")

        start = time.monotonic()
        response = await self._client.messages.create(
            model=model,
            max_tokens=max_tokens,
            temperature=temperature,
            system=system,
            messages=[{"role": "user", "content": user}],
        )
        latency_ms = int((time.monotonic() - start) * 1000)

        usage = getattr(response, "usage", None)
        logger.info(
            "LLM response: model=%s input_tokens=%s output_tokens=%s latency_ms=%d",
            model,
            getattr(usage, "input_tokens", None),
            getattr(usage, "output_tokens", None),
            latency_ms,
        )

        parts = [getattr(block, "text", "") for block in getattr(response, "content", None) or []]
        return "".join(parts).strip()

    async def close(self) -> None:
        """Release the underlying HTTP connection pool."""
        if self._client is not None and hasattr(self._client, "close"):
            await self._client.close()
