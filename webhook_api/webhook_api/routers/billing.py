"""Stripe billing webhook."""

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, HTTPException, Request

from webhook_api.dependencies import LedgerDep, SettingsDep
from webhook_api.schemas import BillingEventResponse
from webhook_api.services.billing_service import BillingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/billing", tags=["billing"])


@router.post("/stripe/webhook", response_model=BillingEventResponse)
async def stripe_webhook(
    request: Request,
    settings: SettingsDep,
    ledger: LedgerDep,
) -> BillingEventResponse:
    """Handle incoming Stripe webhook events.

    Validates the webhook signature using the configured webhook secret
    and dispatches the event to the billing service.
    """
    if not settings.billing_enabled:
        return BillingEventResponse(status="billing_disabled")

    body = await request.body()
    sig_header = request.headers.get("stripe-signature", "")
    if not sig_header:
        raise HTTPException(status_code=400, detail="Missing Stripe signature")

    service = BillingService(ledger, settings)
    try:
        service.verify_event(body, sig_header)
        event = json.loads(body)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid payload")
    except Exception as exc:
        logger.warning("Stripe webhook signature verification failed: %s", exc)
        raise HTTPException(status_code=400, detail="Signature verification failed")

    result = await service.handle_webhook_event(event)
    return BillingEventResponse(**result)
