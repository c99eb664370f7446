"""Account, plan and usage models.

Plan ceilings::

    free:     repos=1,  loc=25_000
    starter:  repos=4,  loc=100_000
    pro:      repos=30, loc=800_000

Freshly created accounts carry zero limits until a plan is applied.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class PlanTier(str, Enum):
    FREE = "free"
    STARTER = "starter"
    PRO = "pro"


class PlanLimits(BaseModel):
    """Usage ceilings granted by a plan."""

    model_config = ConfigDict(frozen=True)

    repos_limit: int
    loc_limit: int


PLAN_LIMITS: dict[PlanTier, PlanLimits] = {
    PlanTier.FREE: PlanLimits(repos_limit=1, loc_limit=25_000),
    PlanTier.STARTER: PlanLimits(repos_limit=4, loc_limit=100_000),
    PlanTier.PRO: PlanLimits(repos_limit=30, loc_limit=800_000),
}


def resolve_plan(plan_name: str | None) -> tuple[PlanTier, PlanLimits]:
    """Map a plan name to its tier and limits.

    Matching is case-insensitive and ignores surrounding whitespace.
    Marketplace listings such as ``"Pro Pack"`` resolve by their first
    word.  Unrecognised names fall back to the free tier.
    """
    key = (plan_name or "").strip().lower()
    tier = PlanTier.FREE
    for candidate in (key, key.split(" ", 1)[0]):
        try:
            tier = PlanTier(candidate)
            break
        except ValueError:
            continue
    return tier, PLAN_LIMITS[tier]


class Usage(BaseModel):
    """Consumed counters and their ceilings for one account."""

    repos_count: int = 0
    repos_limit: int = 0
    loc_count: int = 0
    loc_limit: int = 0


class Account(BaseModel):
    """The billed entity that owns repositories and a usage ledger."""

    id: str
    provider_id: int = Field(..., description="Numeric GitHub account id.")
    login: str | None = None
    plan: PlanTier = PlanTier.FREE
    usage: Usage = Field(default_factory=Usage)
    repos: list[str] = Field(
        default_factory=list,
        description="Lowercased ``owner/repo`` names owned by the account.",
    )
    stripe_customer_id: str | None = None
    stripe_subscription_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
