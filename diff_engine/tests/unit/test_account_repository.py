"""Unit tests for the account state store.

These tests use an in-memory SQLite database via aiosqlite so they can
run without a PostgreSQL instance.

Covers:
- Idempotent account creation with zero limits
- Repo-set union/remove with matching ``repos_count`` deltas
- Reverse lookup from repository name to account
- Atomic usage increments and plan updates
- Public run counters
"""

from __future__ import annotations

import pytest
from diff_engine.models.account import PlanTier
from diff_engine.state.repository import (
    AccountRepository,
    PublicStatsRepository,
    normalize_repo_names,
)


class TestNormalizeRepoNames:
    def test_lowercases_strips_and_dedupes(self) -> None:
        assert normalize_repo_names([" Octo/Widgets ", "octo/widgets", "", "a/B"]) == ["octo/widgets", "a/b"]


class TestGetOrCreate:
    @pytest.mark.asyncio
    async def test_new_account_is_inert(self, async_session) -> None:
        """New accounts start on free with zero usage and zero limits."""
        repo = AccountRepository(async_session)
        account, created = await repo.get_or_create(1001, "alice")

        assert created is True
        assert account.plan == PlanTier.FREE
        assert account.login == "alice"
        assert account.usage.model_dump() == {"repos_count": 0, "repos_limit": 0, "loc_count": 0, "loc_limit": 0}
        assert account.repos == []

    @pytest.mark.asyncio
    async def test_second_call_returns_existing(self, async_session) -> None:
        repo = AccountRepository(async_session)
        first, _ = await repo.get_or_create(1001, "alice")
        second, created = await repo.get_or_create(1001, "renamed")

        assert created is False
        assert second.id == first.id
        assert second.login == "alice"

    @pytest.mark.asyncio
    async def test_get_unknown_account(self, async_session) -> None:
        assert await AccountRepository(async_session).get("nope") is None


class TestRepoSet:
    @pytest.mark.asyncio
    async def test_add_is_idempotent_and_counts_new_names(self, async_session) -> None:
        repo = AccountRepository(async_session)
        account, _ = await repo.get_or_create(1, "alice")

        assert await repo.add_repos(account.id, ["Octo/Widgets", "octo/gadgets"]) == 2
        assert await repo.add_repos(account.id, ["octo/widgets", "octo/tools"]) == 1

        refreshed = await repo.get(account.id)
        assert refreshed is not None
        assert refreshed.usage.repos_count == 3
        assert sorted(refreshed.repos) == ["octo/gadgets", "octo/tools", "octo/widgets"]

    @pytest.mark.asyncio
    async def test_remove_counts_only_present_names(self, async_session) -> None:
        repo = AccountRepository(async_session)
        account, _ = await repo.get_or_create(1, "alice")
        await repo.add_repos(account.id, ["octo/a", "octo/b"])

        assert await repo.remove_repos(account.id, ["OCTO/A", "octo/missing"]) == 1
        assert await repo.remove_repos(account.id, []) == 0

        refreshed = await repo.get(account.id)
        assert refreshed is not None
        assert refreshed.usage.repos_count == 1
        assert refreshed.repos == ["octo/b"]

    @pytest.mark.asyncio
    async def test_find_by_repo_is_case_insensitive(self, async_session) -> None:
        repo = AccountRepository(async_session)
        account, _ = await repo.get_or_create(1, "alice")
        await repo.add_repos(account.id, ["Octo/Widgets"])

        found = await repo.find_by_repo("OCTO/widgets")
        assert found is not None
        assert found.id == account.id
        assert await repo.find_by_repo("octo/other") is None

    @pytest.mark.asyncio
    async def test_find_by_repo_prefers_oldest_account(self, async_session) -> None:
        repo = AccountRepository(async_session)
        older, _ = await repo.get_or_create(1, "alice")
        newer, _ = await repo.get_or_create(2, "bob")
        await repo.add_repos(newer.id, ["octo/shared"])
        await repo.add_repos(older.id, ["octo/shared"])

        found = await repo.find_by_repo("octo/shared")
        assert found is not None
        assert found.id == older.id


class TestUsageAndPlan:
    @pytest.mark.asyncio
    async def test_increment_loc_accumulates(self, async_session) -> None:
        repo = AccountRepository(async_session)
        account, _ = await repo.get_or_create(1, "alice")
        await repo.increment_loc(account.id, 120)
        await repo.increment_loc(account.id, 30)

        refreshed = await repo.get(account.id)
        assert refreshed is not None
        assert refreshed.usage.loc_count == 150

    @pytest.mark.asyncio
    async def test_set_plan_keeps_consumed_counters(self, async_session) -> None:
        repo = AccountRepository(async_session)
        account, _ = await repo.get_or_create(1, "alice")
        await repo.add_repos(account.id, ["octo/a"])
        await repo.increment_loc(account.id, 500)

        assert await repo.set_plan(account.id, PlanTier.PRO, repos_limit=30, loc_limit=800_000) is True

        refreshed = await repo.get(account.id)
        assert refreshed is not None
        assert refreshed.plan == PlanTier.PRO
        assert refreshed.usage.model_dump() == {
            "repos_count": 1,
            "repos_limit": 30,
            "loc_count": 500,
            "loc_limit": 800_000,
        }

    @pytest.mark.asyncio
    async def test_set_plan_unknown_account(self, async_session) -> None:
        repo = AccountRepository(async_session)
        assert await repo.set_plan("missing", PlanTier.PRO, repos_limit=30, loc_limit=1) is False

    @pytest.mark.asyncio
    async def test_billing_ids_and_customer_lookup(self, async_session) -> None:
        repo = AccountRepository(async_session)
        account, _ = await repo.get_or_create(1, "alice")
        await repo.set_billing_ids(account.id, customer_id="cus_123", subscription_id="sub_456")

        found = await repo.find_by_stripe_customer("cus_123")
        assert found is not None
        assert found.id == account.id
        assert found.stripe_subscription_id == "sub_456"


class TestPublicStats:
    @pytest.mark.asyncio
    async def test_empty_stats(self, async_session) -> None:
        stats = await PublicStatsRepository(async_session).get()
        assert stats == {"runs": 0, "loc_analyzed": 0, "last_run_at": None}

    @pytest.mark.asyncio
    async def test_record_run_creates_then_increments(self, async_session) -> None:
        repo = PublicStatsRepository(async_session)
        await repo.record_run(100)
        await repo.record_run(25)

        stats = await repo.get()
        assert stats["runs"] == 2
        assert stats["loc_analyzed"] == 125
        assert stats["last_run_at"] is not None
