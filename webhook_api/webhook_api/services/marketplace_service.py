"""GitHub Marketplace purchase events.

``marketplace_purchase`` webhooks identify the purchasing account by its
GitHub id and carry the purchased plan name::

    purchased / changed  -> apply marketplace_purchase.plan.name
    cancelled            -> reset to the free tier

Other actions (``pending_change``, ``pending_change_cancelled``) are
acknowledged and ignored.
"""

from __future__ import annotations

import logging
from typing import Any

from diff_engine.models.account import PlanTier

from webhook_api.services.usage_ledger import UsageLedger

logger = logging.getLogger(__name__)

_APPLY_ACTIONS = frozenset({"purchased", "changed"})
_CANCEL_ACTIONS = frozenset({"cancelled"})


class MarketplaceService:
    """Apply marketplace plan changes to accounts."""

    def __init__(self, ledger: UsageLedger) -> None:
        self._ledger = ledger

    async def handle_event(self, payload: dict[str, Any]) -> dict[str, str]:
        """Process one marketplace purchase event.

        Returns
        -------
        dict
            ``{"status": "processed", "plan": ...}`` or
            ``{"status": "ignored"}``.
        """
        action = payload.get("action", "")
        purchase = payload.get("marketplace_purchase") or {}
        owner = purchase.get("account") or {}
        provider_id = owner.get("id")

        if action not in _APPLY_ACTIONS | _CANCEL_ACTIONS:
            logger.debug("Unhandled marketplace action: %s", action)
            return {"status": "ignored"}
        if not isinstance(provider_id, int):
            logger.warning("Marketplace %s event without an account id", action)
            return {"status": "ignored"}

        account = await self._ledger.ensure_account(provider_id, owner.get("login"))
        if action in _CANCEL_ACTIONS:
            plan_name: str | None = PlanTier.FREE.value
        else:
            plan_name = (purchase.get("plan") or {}).get("name")

        tier = await self._ledger.apply_plan(account.id, plan_name)
        if tier is None:
            return {"status": "ignored"}
        logger.info("Marketplace %s: account %s now on %s", action, account.id, tier.value)
        return {"status": "processed", "plan": tier.value}
