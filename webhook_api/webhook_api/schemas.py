"""Request and response schemas shared by the routers."""

from __future__ import annotations

from pydantic import BaseModel, Field


class DiffSubmission(BaseModel):
    """Request body for ``POST /playground/explain``."""

    diff_body: str = Field(
        ...,
        description="JSON-encoded array of changed files as returned by the pull request files endpoint.",
    )


class CommentResponse(BaseModel):
    comment: str


class MessageResponse(BaseModel):
    message: str
    detail: str | None = None


class StatsResponse(BaseModel):
    """Public counters across all analyses."""

    runs: int = 0
    loc_analyzed: int = 0
    last_run_at: str | None = None


class BillingEventResponse(BaseModel):
    status: str
    plan: str | None = None
