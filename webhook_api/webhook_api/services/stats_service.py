"""Public run counters shown on the landing page."""

from __future__ import annotations

import logging
from typing import Any

from diff_engine.state.repository import PublicStatsRepository
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


class StatsService:
    """Best-effort updates of the global ``runs`` / ``loc_analyzed`` counters."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._repo = PublicStatsRepository(session)

    async def record_run(self, loc: int) -> bool:
        """Count one completed analysis of *loc* lines.

        A failed write is logged and reported as ``False``; it never
        propagates to the caller.
        """
        try:
            await self._repo.record_run(loc)
            await self._session.commit()
        except SQLAlchemyError:
            logger.exception("Failed to update public stats")
            await self._session.rollback()
            return False
        return True

    async def get_stats(self) -> dict[str, Any]:
        return await self._repo.get()
