"""Pull-request summariser.

Sends every batch to the LLM concurrently, keeps the non-empty answers in
batch order and assembles the final comment: a fixed banner followed by one
block per surviving batch.  A failing batch contributes nothing and never
affects its siblings.  If no batch produced text, a canned "try again"
message replaces the body.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass

from diff_engine.models.files import FileBatch

from summary_engine.config import SummarySettings
from summary_engine.engines.llm_client import LLMClient, LLMDisabledError
from summary_engine.engines.prompts import PromptTemplate, get_prompt

logger = logging.getLogger(__name__)

DEFAULT_FEEDBACK_URL = "https://tally.so/r/3jZG9E"

BANNER_TITLE = "## :robot: Explain this PR :robot:"

FALLBACK_LINES: tuple[str, ...] = (
    "No changes to analyze. Something likely went wrong. :thinking_face: We will look into it!",
    "Sometimes re-running the analysis helps with timeout issues. :shrug:",
)


@dataclass(frozen=True)
class SummaryConfig:
    """Everything that shapes an LLM call and the assembled comment."""

    model: str
    max_tokens: int
    temperature: float
    prompt: PromptTemplate
    min_batch_chars: int = 30
    feedback_url: str = DEFAULT_FEEDBACK_URL

    @classmethod
    def from_settings(cls, settings: SummarySettings, *, feedback_url: str = DEFAULT_FEEDBACK_URL) -> SummaryConfig:
        return cls(
            model=settings.llm_model,
            max_tokens=settings.llm_max_tokens,
            temperature=settings.llm_temperature,
            prompt=get_prompt(settings.prompt_key),
            min_batch_chars=settings.min_batch_chars,
            feedback_url=feedback_url,
        )

    @property
    def banner(self) -> list[str]:
        return [
            BANNER_TITLE,
            "Here is a summary of what I noticed. I am a Bot in Beta, so I might be wrong. "
            ":smiling_face_with_tear:",
            f"Please [share your feedback]({self.feedback_url}) with me. :heart:",
            "---",
        ]


@dataclass(frozen=True)
class SummaryResult:
    """The assembled comment and how many batches the LLM explained.

    ``explained == 0`` means the comment is the fallback text and no
    paid completion contributed to it.
    """

    comment: str
    explained: int = 0

    @property
    def produced(self) -> bool:
        return self.explained > 0


class SummaryEngine:
    """Turns file batches into the comment body posted on a pull request."""

    def __init__(self, llm: LLMClient, config: SummaryConfig) -> None:
        self._llm = llm
        self._config = config

    @property
    def config(self) -> SummaryConfig:
        return self._config

    async def summarize(self, batches: Sequence[FileBatch]) -> str:
        """Return the assembled comment for *batches*."""
        return (await self.explain(batches)).comment

    async def explain(self, batches: Sequence[FileBatch]) -> SummaryResult:
        """Return the assembled comment together with the explained-batch count."""
        responses = await self.explain_batches(batches)
        return SummaryResult(
            comment=self.build_comment(responses),
            explained=sum(1 for response in responses if response),
        )

    async def explain_batches(self, batches: Sequence[FileBatch]) -> list[str]:
        """Return one response per batch, in input order; failures yield ``""``."""
        if not batches:
            return []
        logger.info(
            "Dispatching %d batch(es) to the LLM: prompt_key=%s prompt_version=%s",
            len(batches),
            self._config.prompt.key,
            self._config.prompt.version,
        )
        return list(await asyncio.gather(*(self._explain_batch(i, batch) for i, batch in enumerate(batches))))

    def build_comment(self, responses: Sequence[str]) -> str:
        """Join the banner with every non-empty response."""
        blocks = [response for response in responses if response]
        if not blocks:
            logger.error("No responses from the LLM; using fallback message")
            blocks = ["\n".join(FALLBACK_LINES)]
        return "\n".join(self._config.banner) + "\n\n" + "\n\n".join(blocks)

    async def _explain_batch(self, index: int, batch: FileBatch) -> str:
        serialized = batch.serialize()
        if len(serialized) < self._config.min_batch_chars:
            logger.debug("Batch %d too small to send (%d chars)", index, len(serialized))
            return ""

        try:
            return await self._llm.complete(
                self._config.prompt.content,
                serialized,
                model=self._config.model,
                max_tokens=self._config.max_tokens,
                temperature=self._config.temperature,
            )
        except LLMDisabledError:
            logger.warning("LLM disabled; batch %d skipped", index)
            return ""
        except Exception:
            logger.warning("LLM request for batch %d failed", index, exc_info=True)
            return ""
