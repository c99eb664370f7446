"""Versioned prompt template registry for LLM interactions.

Every prompt used by the summary engine is registered here as a frozen
dataclass with a version string.  The version is logged alongside every
LLM call so that prompt changes are traceable in the logs.  When a prompt
is edited, bump its ``version``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PromptTemplate:
    """An immutable, versioned prompt template."""

    key: str
    version: str
    content: str
    description: str


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

PROMPT_REGISTRY: dict[str, PromptTemplate] = {}


def _register(template: PromptTemplate) -> PromptTemplate:
    """Register a template and return it for module-level assignment."""
    PROMPT_REGISTRY[template.key] = template
    return template


def get_prompt(key: str) -> PromptTemplate:
    """Retrieve a registered prompt template by key.

    Raises
    ------
    KeyError
        If no template is registered under *key*.
    """
    try:
        return PROMPT_REGISTRY[key]
    except KeyError:
        raise KeyError(f"Unknown prompt key '{key}'. Registered keys: {sorted(PROMPT_REGISTRY)}")


# ---------------------------------------------------------------------------
# Registered templates
# ---------------------------------------------------------------------------

EXPLAIN_PR_SYSTEM = _register(
    PromptTemplate(
        key="explain_pr_system",
        version="v2",
        content=(
            "You are an assistant designed to help developer teams review pull requests. "
            "You will receive a JSON array of changed files, each with a `filename` and the "
            "unified diff of that file as `content`, showing the code before and after.\n"
            "Compare the before and the after and give an overview of what changed, as a "
            "Markdown bullet list under one heading per file.\n"
            "Focus on architectural and functional changes that affect the application.\n"
            "Mention at most 3 import statements per file.\n"
            "Do not repeat yourself. If you already mentioned a technology such as `useFonts`, "
            "do not mention it again for that file.\n"
            "Always use the full file path. For example, `src/components/Button.tsx` is better "
            "than `Button.tsx`.\n"
            "Be concise and do not discuss the same change twice.\n"
            "Only cover the most impactful functional changes. The maximum is 4 bullet points per "
            "file. For each additional bullet point, divide the length of the file's `content` by "
            "1500 to determine how many more bullet points you may add for that file.\n"
            "Here is an example of a response:\n"
            "## src/App.tsx\n"
            "  - Moved the routing logic to a standalone `Router` component\n"
            "  - Set up a listener for the auth state of the user and update the Redux store "
            "with the current user\n"
        ),
        description="System prompt for summarising one batch of pull-request files.",
    )
)
