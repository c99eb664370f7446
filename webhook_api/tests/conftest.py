"""Shared fixtures for webhook API tests.

Provides an in-memory aiosqlite session, a recording fake of the GitHub
host API, a summary engine backed by a mocked LLM client, webhook signing
helpers and a FastAPI test client wired to all of the above through
``dependency_overrides``.
"""

from __future__ import annotations

import json
from collections.abc import AsyncGenerator, Callable
from typing import Any
from unittest.mock import AsyncMock, MagicMock, PropertyMock

import pytest
import pytest_asyncio
from diff_engine.events import EventRouter, compute_signature
from diff_engine.models.account import PlanTier
from diff_engine.models.files import ChangedFile
from diff_engine.state.database import create_tables, get_engine
from diff_engine.state.repository import AccountRepository
from httpx import ASGITransport, AsyncClient
from pydantic import SecretStr
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from summary_engine.engines.llm_client import LLMClient
from summary_engine.engines.prompts import get_prompt
from summary_engine.engines.summarizer import SummaryConfig, SummaryEngine

from webhook_api.config import APISettings
from webhook_api.services.stats_service import StatsService
from webhook_api.services.usage_ledger import UsageLedger
from webhook_api.services.webhook_orchestrator import WebhookOrchestrator

WEBHOOK_SECRET = "test-webhook-secret"
BOT_LOGIN = "explainthispr[bot]"
LLM_SUMMARY = "### `src/app.ts`\n- Adds request validation"


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeHost:
    """In-memory stand-in for an installation-scoped GitHub client."""

    def __init__(self, files: list[ChangedFile] | None = None) -> None:
        self.files = files or []
        self.comments: list[dict[str, Any]] = []
        self.fail_list_files = False
        self.fail_comments = False

    async def list_files(self, owner: str, repo: str, pull_number: int) -> list[ChangedFile]:
        if self.fail_list_files:
            raise RuntimeError("GitHub unavailable")
        return list(self.files)

    async def create_comment(self, owner: str, repo: str, issue_number: int, body: str) -> dict[str, Any]:
        if self.fail_comments:
            raise RuntimeError("comment rejected")
        comment = {"owner": owner, "repo": repo, "issue_number": issue_number, "body": body}
        self.comments.append(comment)
        return {"id": len(self.comments)}


class FakeGitHubApp:
    """Stand-in for ``GitHubAppClient`` that hands out one shared FakeHost."""

    def __init__(self, host: FakeHost) -> None:
        self.host = host
        self.installations: list[int] = []

    async def for_installation(self, installation_id: int) -> FakeHost:
        self.installations.append(installation_id)
        return self.host


# ---------------------------------------------------------------------------
# Settings and data
# ---------------------------------------------------------------------------


@pytest.fixture()
def api_settings() -> APISettings:
    return APISettings(
        _env_file=None,
        database_url="sqlite+aiosqlite:///:memory:",
        github_webhook_secret=SecretStr(WEBHOOK_SECRET),
        bot_login=BOT_LOGIN,
        billing_enabled=True,
        stripe_secret_key=SecretStr("sk_test_123"),
        stripe_webhook_secret=SecretStr("whsec_test"),
        stripe_price_id_starter="price_starter",
        stripe_price_id_pro="price_pro",
    )


@pytest.fixture()
def source_files() -> list[ChangedFile]:
    """Two relevant source files (10 + 5 lines) and two that the filter drops."""
    return [
        ChangedFile(filename="src/app.ts", status="modified", changes=10, patch="@@ -1,3 +1,8 @@\n+validate(req)"),
        ChangedFile(filename="src/app.test.ts", status="modified", changes=50, patch="+it('works')"),
        ChangedFile(filename="lib/util.py", status="removed", changes=5, patch=None),
        ChangedFile(filename="README.md", status="modified", changes=3, patch="+docs"),
    ]


@pytest.fixture()
def host(source_files) -> FakeHost:
    return FakeHost(source_files)


@pytest.fixture()
def github_app(host) -> FakeGitHubApp:
    return FakeGitHubApp(host)


# ---------------------------------------------------------------------------
# LLM and summary engine
# ---------------------------------------------------------------------------


@pytest.fixture()
def mock_llm() -> MagicMock:
    llm = MagicMock(spec=LLMClient)
    type(llm).enabled = PropertyMock(return_value=True)
    llm.complete = AsyncMock(return_value=LLM_SUMMARY)
    return llm


@pytest.fixture()
def summary_engine(mock_llm) -> SummaryEngine:
    config = SummaryConfig(
        model="claude-test",
        max_tokens=400,
        temperature=0.3,
        prompt=get_prompt("explain_pr_system"),
        min_batch_chars=30,
    )
    return SummaryEngine(mock_llm, config)


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def async_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield a session bound to a fresh in-memory database."""
    engine = get_engine("sqlite+aiosqlite:///:memory:")
    await create_tables(engine)
    factory = async_sessionmaker(engine, expire_on_commit=False)
    async with factory() as session:
        yield session
    await engine.dispose()


@pytest.fixture()
def make_account(async_session) -> Callable[..., Any]:
    """Create a committed account with explicit usage and limits."""

    async def _make(
        provider_id: int = 1,
        *,
        repos: list[str] | None = None,
        repos_limit: int = 4,
        loc_limit: int = 100_000,
        loc_count: int = 0,
        plan: PlanTier = PlanTier.STARTER,
    ):
        repo = AccountRepository(async_session)
        account, _ = await repo.get_or_create(provider_id, f"user{provider_id}")
        await repo.set_plan(account.id, plan, repos_limit=repos_limit, loc_limit=loc_limit)
        if repos:
            await repo.add_repos(account.id, repos)
        if loc_count:
            await repo.increment_loc(account.id, loc_count)
        await async_session.commit()
        return await repo.get(account.id)

    return _make


@pytest.fixture()
def ledger(async_session) -> UsageLedger:
    return UsageLedger(async_session)


@pytest.fixture()
def orchestrator(async_session, ledger, summary_engine, github_app) -> WebhookOrchestrator:
    return WebhookOrchestrator(
        router=EventRouter(WEBHOOK_SECRET, bot_login=BOT_LOGIN),
        ledger=ledger,
        summary_engine=summary_engine,
        host_factory=github_app.for_installation,
        stats=StatsService(async_session),
    )


# ---------------------------------------------------------------------------
# Webhook payloads
# ---------------------------------------------------------------------------


@pytest.fixture()
def sign() -> Callable[[dict[str, Any]], tuple[str, bytes]]:
    """Serialise a payload and return ``(signature_header, raw_body)``."""

    def _sign(payload: dict[str, Any]) -> tuple[str, bytes]:
        body = json.dumps(payload).encode("utf-8")
        return compute_signature(body, WEBHOOK_SECRET), body

    return _sign


@pytest.fixture()
def labeled_payload() -> dict[str, Any]:
    return {
        "action": "labeled",
        "label": {"name": "explainthispr"},
        "pull_request": {"number": 42},
        "repository": {"name": "Widgets", "owner": {"login": "Octo"}},
        "installation": {"id": 777},
        "sender": {"login": "alice", "id": 1},
    }


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def client(api_settings, async_session, github_app, summary_engine) -> AsyncGenerator[AsyncClient, None]:
    """Return an ``AsyncClient`` for the app with all dependencies overridden."""
    from webhook_api.dependencies import get_db_session, get_github_client, get_settings, get_summary_engine
    from webhook_api.main import create_app

    app = create_app()

    async def _session() -> AsyncGenerator[AsyncSession, None]:
        yield async_session

    app.dependency_overrides[get_settings] = lambda: api_settings
    app.dependency_overrides[get_db_session] = _session
    app.dependency_overrides[get_github_client] = lambda: github_app
    app.dependency_overrides[get_summary_engine] = lambda: summary_engine

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
