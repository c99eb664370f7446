"""Stripe billing integration service.

Keeps account plans in sync with Stripe subscriptions:

- ``checkout.session.completed``: the session's ``client_reference_id`` is
  the purchaser's GitHub id.  The plan comes from session metadata
  ``plan`` or, failing that, from the purchased price id.  The plan is
  applied and the customer and subscription ids are stored.
- ``customer.subscription.deleted``: the owning account returns to the
  free tier.
"""

from __future__ import annotations

import logging
from typing import Any

from diff_engine.models.account import PlanTier

from webhook_api.config import APISettings
from webhook_api.services.usage_ledger import UsageLedger

logger = logging.getLogger(__name__)


class BillingService:
    """Stripe webhook processing.

    Parameters
    ----------
    ledger:
        Usage ledger bound to the request's session.
    settings:
        API settings containing Stripe configuration.
    """

    def __init__(self, ledger: UsageLedger, settings: APISettings) -> None:
        self._ledger = ledger
        self._settings = settings

    def _get_stripe(self) -> Any:
        """Lazily import and configure the Stripe library."""
        import stripe

        stripe.api_key = self._settings.stripe_secret_key.get_secret_value()
        return stripe

    def verify_event(self, payload: bytes, sig_header: str) -> None:
        """Verify the ``Stripe-Signature`` header of a webhook body.

        Raises
        ------
        ValueError
            If the payload is not valid JSON.
        stripe.SignatureVerificationError
            If the signature does not match.
        """
        stripe = self._get_stripe()
        stripe.Webhook.construct_event(
            payload=payload,
            sig_header=sig_header,
            secret=self._settings.stripe_webhook_secret.get_secret_value(),
        )

    def plan_for_price(self, price_id: str | None) -> str | None:
        prices = {
            self._settings.stripe_price_id_starter: PlanTier.STARTER.value,
            self._settings.stripe_price_id_pro: PlanTier.PRO.value,
        }
        prices.pop("", None)
        return prices.get(price_id or "")

    async def handle_webhook_event(self, event: dict[str, Any]) -> dict[str, str]:
        """Process a Stripe webhook event.

        Returns
        -------
        dict
            Contains ``status`` indicating processing result.
        """
        event_type = event.get("type", "")
        data_object = event.get("data", {}).get("object", {}) or {}

        if event_type == "checkout.session.completed":
            return await self._handle_checkout_completed(data_object)

        if event_type == "customer.subscription.deleted":
            return await self._handle_subscription_deleted(data_object)

        logger.debug("Unhandled Stripe event type: %s", event_type)
        return {"status": "ignored"}

    async def _handle_checkout_completed(self, checkout: dict[str, Any]) -> dict[str, str]:
        reference = checkout.get("client_reference_id")
        try:
            provider_id = int(reference)
        except (TypeError, ValueError):
            logger.warning("Checkout session %s has no usable client_reference_id", checkout.get("id"))
            return {"status": "ignored"}

        metadata = checkout.get("metadata") or {}
        plan_name = metadata.get("plan") or self._plan_from_line_items(checkout.get("id"))
        if not plan_name:
            logger.warning("Checkout session %s: cannot determine plan", checkout.get("id"))
            return {"status": "ignored"}

        account = await self._ledger.ensure_account(provider_id, metadata.get("login"))
        tier = await self._ledger.apply_plan(account.id, plan_name)
        await self._ledger.link_billing(
            account.id,
            customer_id=checkout.get("customer"),
            subscription_id=checkout.get("subscription"),
        )
        logger.info("Checkout completed: account %s now on %s", account.id, tier.value if tier else "?")
        return {"status": "processed"}

    async def _handle_subscription_deleted(self, subscription: dict[str, Any]) -> dict[str, str]:
        customer_id = subscription.get("customer") or ""
        account = await self._ledger.accounts.find_by_stripe_customer(customer_id) if customer_id else None
        if account is None:
            logger.warning("Subscription deleted for unknown customer %s", customer_id)
            return {"status": "ignored"}

        await self._ledger.apply_plan(account.id, PlanTier.FREE.value)
        await self._ledger.link_billing(account.id, customer_id=customer_id, subscription_id=None)
        logger.info("Subscription deleted: account %s reset to free", account.id)
        return {"status": "processed"}

    def _plan_from_line_items(self, session_id: str | None) -> str | None:
        if not session_id:
            return None
        try:
            stripe = self._get_stripe()
            items = stripe.checkout.Session.list_line_items(session_id, limit=5)
        except Exception:
            logger.warning("Failed to fetch line items for %s", session_id, exc_info=True)
            return None
        for item in getattr(items, "data", None) or []:
            plan = self.plan_for_price(getattr(getattr(item, "price", None), "id", None))
            if plan:
                return plan
        return None
