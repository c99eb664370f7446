"""Pydantic models shared across the explanation pipeline."""

from __future__ import annotations

from diff_engine.models.account import (
    PLAN_LIMITS,
    Account,
    PlanLimits,
    PlanTier,
    Usage,
    resolve_plan,
)
from diff_engine.models.events import Intent, PullRequestTarget, WebhookEvent
from diff_engine.models.files import ChangedFile, FileBatch, FileBatchEntry, FileStatus

__all__ = [
    "PLAN_LIMITS",
    "Account",
    "ChangedFile",
    "FileBatch",
    "FileBatchEntry",
    "FileStatus",
    "Intent",
    "PlanLimits",
    "PlanTier",
    "PullRequestTarget",
    "Usage",
    "WebhookEvent",
    "resolve_plan",
]
