"""Webhook intent classification results."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class Intent(str, Enum):
    """Closed set of purposes an inbound webhook event can have."""

    EXPLAIN_BY_LABEL = "explain_by_label"
    EXPLAIN_BY_COMMENT = "explain_by_comment"
    REPO_ADDED = "repo_added"
    REPO_REMOVED = "repo_removed"
    COMMENT_BY_BOT = "comment_by_bot"
    NOT_HANDLED = "not_handled"
    BAD_REQUEST = "bad_request"

    @property
    def is_analysis(self) -> bool:
        return self in (Intent.EXPLAIN_BY_LABEL, Intent.EXPLAIN_BY_COMMENT)

    @property
    def is_repo_event(self) -> bool:
        return self in (Intent.REPO_ADDED, Intent.REPO_REMOVED)


class PullRequestTarget(BaseModel):
    """Routing key for an analysis: which pull request, through which installation."""

    repo_owner: str
    repo_name: str
    pull_number: int
    installation_id: int = 0

    @property
    def full_name(self) -> str:
        """Lowercased ``owner/repo`` used for account lookups."""
        return f"{self.repo_owner}/{self.repo_name}".lower()


class WebhookEvent(BaseModel):
    """A classified, authenticated webhook payload."""

    intent: Intent
    payload: dict[str, Any] = Field(default_factory=dict)
    target: PullRequestTarget | None = Field(
        default=None,
        description="Resolved pull request for analysis intents; None otherwise.",
    )
