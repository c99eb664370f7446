"""Shared fixtures for summary engine tests.

Provides mock LLMClient instances, a fake Anthropic SDK client and batch
factories so that individual test modules stay concise.
"""

from __future__ import annotations

from collections.abc import Callable
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, PropertyMock

import pytest
from diff_engine.models.files import FileBatch, FileBatchEntry

from summary_engine.engines.llm_client import LLMClient
from summary_engine.engines.prompts import get_prompt
from summary_engine.engines.summarizer import SummaryConfig

# ------------------------------------------------------------------ #
# LLM mocks
# ------------------------------------------------------------------ #


@pytest.fixture()
def mock_llm_enabled() -> MagicMock:
    """Return a MagicMock that behaves like an *enabled* LLMClient."""
    llm = MagicMock(spec=LLMClient)
    type(llm).enabled = PropertyMock(return_value=True)
    llm.complete = AsyncMock(return_value="- `src/app.ts`: refactors the router")
    return llm


@pytest.fixture()
def fake_sdk_client() -> MagicMock:
    """Return an object shaped like ``anthropic.AsyncAnthropic``."""
    client = MagicMock()
    client.messages.create = AsyncMock(
        return_value=SimpleNamespace(
            content=[SimpleNamespace(type="text", text="  - summary line  ")],
            usage=SimpleNamespace(input_tokens=120, output_tokens=30),
        )
    )
    client.close = AsyncMock()
    return client


# ------------------------------------------------------------------ #
# Config and batches
# ------------------------------------------------------------------ #


@pytest.fixture()
def summary_config() -> SummaryConfig:
    return SummaryConfig(
        model="claude-test",
        max_tokens=400,
        temperature=0.3,
        prompt=get_prompt("explain_pr_system"),
        min_batch_chars=30,
        feedback_url="https://example.com/feedback",
    )


@pytest.fixture()
def make_batch() -> Callable[..., FileBatch]:
    """Return a factory building a one-file batch with *size* characters of content."""

    def _make(filename: str = "src/app.ts", size: int = 200) -> FileBatch:
        return FileBatch(entries=[FileBatchEntry(filename=filename, content="+" * size)])

    return _make
