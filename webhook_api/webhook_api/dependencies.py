"""FastAPI dependency injection for settings, sessions and shared clients."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from typing import Annotated

from diff_engine.chunking import Chunker
from diff_engine.events import EventRouter
from diff_engine.state.database import get_engine
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from summary_engine.config import SummarySettings, load_summary_settings
from summary_engine.engines.llm_client import LLMClient
from summary_engine.engines.summarizer import SummaryConfig, SummaryEngine

from webhook_api.config import APISettings, load_api_settings
from webhook_api.services.github_client import GitHubAppClient
from webhook_api.services.stats_service import StatsService
from webhook_api.services.usage_ledger import UsageLedger
from webhook_api.services.webhook_orchestrator import WebhookOrchestrator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

_settings_cache: APISettings | None = None


def get_settings() -> APISettings:
    """Return the cached :class:`APISettings` singleton."""
    global _settings_cache  # noqa: PLW0603
    if _settings_cache is None:
        _settings_cache = load_api_settings()
    return _settings_cache


SettingsDep = Annotated[APISettings, Depends(get_settings)]

# ---------------------------------------------------------------------------
# Database session
# ---------------------------------------------------------------------------

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def init_engine(settings: APISettings) -> AsyncEngine:
    """Create and cache the global async engine."""
    global _engine, _session_factory  # noqa: PLW0603
    _engine = get_engine(settings.database_url)
    _session_factory = async_sessionmaker(_engine, expire_on_commit=False)
    return _engine


async def dispose_engine() -> None:
    """Dispose the global engine pool (call during shutdown)."""
    global _engine, _session_factory  # noqa: PLW0603
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_factory = None


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Return the global async session factory."""
    if _session_factory is None:
        raise RuntimeError(
            "Database engine has not been initialised. Ensure init_engine() is called during application startup."
        )
    return _session_factory


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an ``AsyncSession``; commits on clean exit, rolls back on error."""
    session = get_session_factory()()
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


SessionDep = Annotated[AsyncSession, Depends(get_db_session)]

# ---------------------------------------------------------------------------
# GitHub App client
# ---------------------------------------------------------------------------

_github_client: GitHubAppClient | None = None


def init_github_client(settings: APISettings) -> GitHubAppClient:
    global _github_client  # noqa: PLW0603
    _github_client = GitHubAppClient(
        settings.github_app_id,
        settings.github_private_key.get_secret_value(),
        api_url=settings.github_api_url,
        timeout=settings.github_timeout,
    )
    if not _github_client.configured:
        logger.warning("GitHub App credentials are not configured; analysis events will fail upstream")
    return _github_client


async def close_github_client() -> None:
    global _github_client  # noqa: PLW0603
    if _github_client is not None:
        await _github_client.close()
        _github_client = None


def get_github_client() -> GitHubAppClient:
    if _github_client is None:
        raise RuntimeError("GitHub client has not been initialised")
    return _github_client


GitHubClientDep = Annotated[GitHubAppClient, Depends(get_github_client)]

# ---------------------------------------------------------------------------
# Summary engine
# ---------------------------------------------------------------------------

_llm_client: LLMClient | None = None
_summary_engine: SummaryEngine | None = None


def init_summary_engine(settings: APISettings, summary_settings: SummarySettings | None = None) -> SummaryEngine:
    """Build the process-wide LLM client and summary engine."""
    global _llm_client, _summary_engine  # noqa: PLW0603
    summary_settings = summary_settings or load_summary_settings()
    _llm_client = LLMClient(summary_settings)
    config = SummaryConfig.from_settings(summary_settings, feedback_url=settings.feedback_url)
    _summary_engine = SummaryEngine(_llm_client, config)
    return _summary_engine


async def close_summary_engine() -> None:
    global _llm_client, _summary_engine  # noqa: PLW0603
    if _llm_client is not None:
        await _llm_client.close()
    _llm_client = None
    _summary_engine = None


def get_summary_engine() -> SummaryEngine:
    if _summary_engine is None:
        raise RuntimeError("Summary engine has not been initialised")
    return _summary_engine


SummaryEngineDep = Annotated[SummaryEngine, Depends(get_summary_engine)]

# ---------------------------------------------------------------------------
# Request-scoped services
# ---------------------------------------------------------------------------


def get_event_router(settings: SettingsDep) -> EventRouter:
    return EventRouter(
        settings.github_webhook_secret.get_secret_value(),
        bot_login=settings.bot_login,
        trigger_label=settings.trigger_label,
        trigger_comment=settings.trigger_comment,
    )


EventRouterDep = Annotated[EventRouter, Depends(get_event_router)]


def get_usage_ledger(settings: SettingsDep, session: SessionDep) -> UsageLedger:
    return UsageLedger(session, feedback_url=settings.feedback_url)


LedgerDep = Annotated[UsageLedger, Depends(get_usage_ledger)]


def get_orchestrator(
    settings: SettingsDep,
    session: SessionDep,
    router: EventRouterDep,
    ledger: LedgerDep,
    github: GitHubClientDep,
    summary_engine: SummaryEngineDep,
) -> WebhookOrchestrator:
    return WebhookOrchestrator(
        router=router,
        ledger=ledger,
        summary_engine=summary_engine,
        host_factory=github.for_installation,
        stats=StatsService(session),
        chunker=Chunker(settings.chunk_char_limit),
    )


OrchestratorDep = Annotated[WebhookOrchestrator, Depends(get_orchestrator)]
