"""Inbound GitHub webhooks: pull request events and marketplace purchases."""

from __future__ import annotations

import json
import logging

from diff_engine.events import verify_signature
from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse

from webhook_api.dependencies import LedgerDep, OrchestratorDep, SettingsDep
from webhook_api.schemas import BillingEventResponse, MessageResponse
from webhook_api.services.marketplace_service import MarketplaceService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

_SIGNATURE_HEADER = "X-Hub-Signature-256"


@router.post(
    "/github",
    response_model=MessageResponse,
    responses={400: {"model": MessageResponse}, 402: {"model": MessageResponse}},
)
async def github_webhook(request: Request, orchestrator: OrchestratorDep) -> JSONResponse:
    """Receive a GitHub App webhook delivery.

    The raw body is passed through untouched so the HMAC signature is
    checked against exactly the bytes GitHub signed.
    """
    raw_body = await request.body()
    outcome = await orchestrator.handle_webhook(request.headers.get(_SIGNATURE_HEADER), raw_body)
    logger.info(
        "Webhook %s finished in state %s",
        request.headers.get("X-GitHub-Delivery", "-"),
        outcome.state.value if outcome.state else "-",
    )
    return JSONResponse(status_code=outcome.status_code, content=outcome.body)


@router.post("/marketplace", response_model=BillingEventResponse)
async def marketplace_webhook(
    request: Request,
    settings: SettingsDep,
    ledger: LedgerDep,
) -> BillingEventResponse:
    """Apply a GitHub Marketplace purchase, change or cancellation."""
    raw_body = await request.body()
    secret = settings.github_webhook_secret.get_secret_value()
    if not verify_signature(raw_body, request.headers.get(_SIGNATURE_HEADER), secret):
        raise HTTPException(status_code=400, detail="Signature verification failed")

    try:
        payload = json.loads(raw_body)
    except json.JSONDecodeError:
        raise HTTPException(status_code=400, detail="Invalid payload")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid payload")

    result = await MarketplaceService(ledger).handle_event(payload)
    return BillingEventResponse(**result)
