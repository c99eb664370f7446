"""Summary engine components."""

from __future__ import annotations

from summary_engine.engines.llm_client import LLMClient, LLMDisabledError
from summary_engine.engines.prompts import PromptTemplate, get_prompt
from summary_engine.engines.summarizer import SummaryConfig, SummaryEngine

__all__ = [
    "LLMClient",
    "LLMDisabledError",
    "PromptTemplate",
    "SummaryConfig",
    "SummaryEngine",
    "get_prompt",
]
