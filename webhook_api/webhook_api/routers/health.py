"""Liveness probe and public statistics."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from webhook_api import __version__
from webhook_api.dependencies import SessionDep
from webhook_api.schemas import StatsResponse
from webhook_api.services.stats_service import StatsService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(session: SessionDep) -> dict[str, Any]:
    """Return service health.

    Always answers 200 so load-balancers see the service as alive; the
    ``db`` field reports whether the database is reachable.
    """
    result: dict[str, Any] = {"status": "healthy", "version": __version__, "db": "ok"}
    try:
        await session.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.warning("Health check: database unreachable", exc_info=True)
        result["db"] = "unreachable"
        result["status"] = "degraded"
    return result


@router.get("/stats", response_model=StatsResponse)
async def public_stats(session: SessionDep) -> StatsResponse:
    """Number of analyses run and lines analysed, across all accounts."""
    return StatsResponse(**await StatsService(session).get_stats())
