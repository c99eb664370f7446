"""Repository classes providing access to the account state store.

Each repository takes an ``AsyncSession`` at construction time and operates
within the caller's transaction boundary.  All writes call
``session.flush()``; the caller is responsible for ``session.commit()``.

Counter updates are single ``UPDATE ... SET col = col + :delta``
statements so concurrent requests never lose increments.  Repository sets
use insert-or-ignore and delete, which makes adds and removes idempotent.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from diff_engine.models.account import Account, PlanTier, Usage
from diff_engine.state.tables import (
    PUBLIC_STATS_ROW_ID,
    AccountRepoTable,
    AccountTable,
    PublicStatsTable,
)

logger = logging.getLogger(__name__)


async def _dialect_insert_ignore(
    session: AsyncSession,
    table: Any,
    values: dict[str, Any],
    index_elements: list[str],
) -> int:
    """Dialect-aware insert with ``ON CONFLICT DO NOTHING``.

    Returns the number of rows actually inserted (0 or 1).
    """
    bind = session.get_bind()
    dialect_name = getattr(getattr(bind, "dialect", None), "name", "")

    stmt: Any
    if "postgresql" in str(dialect_name):
        from sqlalchemy.dialects.postgresql import insert as _pg_insert

        stmt = _pg_insert(table).values(**values)
    else:
        from sqlalchemy.dialects.sqlite import insert as _sqlite_insert

        stmt = _sqlite_insert(table).values(**values)
    stmt = stmt.on_conflict_do_nothing(index_elements=index_elements)
    result = await session.execute(stmt)
    return max(int(result.rowcount or 0), 0)  # type: ignore[attr-defined]


def normalize_repo_names(names: Iterable[str]) -> list[str]:
    """Lowercase, strip and de-duplicate repo names, keeping first-seen order."""
    seen: dict[str, None] = {}
    for name in names:
        cleaned = name.strip().lower()
        if cleaned:
            seen.setdefault(cleaned, None)
    return list(seen)


class AccountRepository:
    """Account lookups and usage mutations."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    async def get(self, account_id: str) -> Account | None:
        row = await self._session.get(AccountTable, account_id, populate_existing=True)
        if row is None:
            return None
        return await self._to_model(row)

    async def find_by_repo(self, full_name: str) -> Account | None:
        """Return the account whose repo set contains *full_name*.

        The name is lowercased before the lookup.  If several accounts
        claim the same repository the oldest one wins.
        """
        stmt = (
            select(AccountTable)
            .join(AccountRepoTable, AccountRepoTable.account_id == AccountTable.id)
            .where(AccountRepoTable.full_name == full_name.strip().lower())
            .order_by(AccountTable.created_at)
            .limit(1)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        row = result.scalar_one_or_none()
        if row is None:
            return None
        return await self._to_model(row)

    async def find_by_provider_id(self, provider_id: int) -> Account | None:
        stmt = (
            select(AccountTable)
            .where(AccountTable.provider_id == provider_id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        row = result.scalar_one_or_none()
        if row is None:
            return None
        return await self._to_model(row)

    async def find_by_stripe_customer(self, customer_id: str) -> Account | None:
        stmt = (
            select(AccountTable)
            .where(AccountTable.stripe_customer_id == customer_id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        row = result.scalars().first()
        if row is None:
            return None
        return await self._to_model(row)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def get_or_create(self, provider_id: int, login: str | None = None) -> tuple[Account, bool]:
        """Return the account for *provider_id*, creating it if absent.

        New accounts start on the free plan with zero usage and zero
        limits; limits stay at zero until a plan is applied.

        Returns
        -------
        tuple[Account, bool]
            The account and ``True`` if it was created by this call.
        """
        existing = await self.find_by_provider_id(provider_id)
        if existing is not None:
            return existing, False

        inserted = await _dialect_insert_ignore(
            self._session,
            AccountTable,
            values={
                "id": uuid.uuid4().hex,
                "provider_id": provider_id,
                "login": login,
                "plan": PlanTier.FREE.value,
                "repos_count": 0,
                "repos_limit": 0,
                "loc_count": 0,
                "loc_limit": 0,
                "created_at": datetime.now(UTC),
                "updated_at": datetime.now(UTC),
            },
            index_elements=["provider_id"],
        )
        await self._session.flush()

        account = await self.find_by_provider_id(provider_id)
        if account is None:
            raise RuntimeError(f"Account for provider_id={provider_id} vanished after insert")
        if inserted:
            logger.info("Created account %s for provider_id=%d", account.id, provider_id)
        return account, bool(inserted)

    # ------------------------------------------------------------------
    # Repo set
    # ------------------------------------------------------------------

    async def add_repos(self, account_id: str, names: Iterable[str]) -> int:
        """Union *names* into the account's repo set.

        ``repos_count`` is incremented by the number of names that were not
        already present.  Returns that number.
        """
        added = 0
        for name in normalize_repo_names(names):
            added += await _dialect_insert_ignore(
                self._session,
                AccountRepoTable,
                values={"account_id": account_id, "full_name": name, "added_at": datetime.now(UTC)},
                index_elements=["account_id", "full_name"],
            )
        if added:
            await self._adjust(account_id, repos_count=added)
        await self._session.flush()
        return added

    async def remove_repos(self, account_id: str, names: Iterable[str]) -> int:
        """Remove *names* from the account's repo set.

        ``repos_count`` is decremented by the number of names that were
        actually present.  Returns that number.
        """
        cleaned = normalize_repo_names(names)
        if not cleaned:
            return 0
        result = await self._session.execute(
            delete(AccountRepoTable).where(
                AccountRepoTable.account_id == account_id,
                AccountRepoTable.full_name.in_(cleaned),
            )
        )
        removed = int(result.rowcount or 0)  # type: ignore[attr-defined]
        if removed:
            await self._adjust(account_id, repos_count=-removed)
        await self._session.flush()
        return removed

    async def list_repos(self, account_id: str) -> list[str]:
        stmt = (
            select(AccountRepoTable.full_name)
            .where(AccountRepoTable.account_id == account_id)
            .order_by(AccountRepoTable.added_at, AccountRepoTable.full_name)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Usage and plan
    # ------------------------------------------------------------------

    async def increment_loc(self, account_id: str, delta: int) -> None:
        """Atomically add *delta* lines to the account's ``loc_count``."""
        await self._adjust(account_id, loc_count=delta)
        await self._session.flush()

    async def set_plan(self, account_id: str, plan: PlanTier, *, repos_limit: int, loc_limit: int) -> bool:
        """Overwrite the plan and ceilings; consumed counters are untouched."""
        result = await self._session.execute(
            update(AccountTable)
            .where(AccountTable.id == account_id)
            .values(
                plan=plan.value,
                repos_limit=repos_limit,
                loc_limit=loc_limit,
                updated_at=datetime.now(UTC),
            )
        )
        await self._session.flush()
        return int(result.rowcount or 0) > 0  # type: ignore[attr-defined]

    async def set_billing_ids(
        self,
        account_id: str,
        *,
        customer_id: str | None,
        subscription_id: str | None,
    ) -> None:
        await self._session.execute(
            update(AccountTable)
            .where(AccountTable.id == account_id)
            .values(
                stripe_customer_id=customer_id,
                stripe_subscription_id=subscription_id,
                updated_at=datetime.now(UTC),
            )
        )
        await self._session.flush()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _adjust(self, account_id: str, **deltas: int) -> None:
        values: dict[str, Any] = {name: getattr(AccountTable, name) + delta for name, delta in deltas.items()}
        values["updated_at"] = datetime.now(UTC)
        await self._session.execute(update(AccountTable).where(AccountTable.id == account_id).values(**values))

    async def _to_model(self, row: AccountTable) -> Account:
        try:
            plan = PlanTier(row.plan)
        except ValueError:
            plan = PlanTier.FREE
        return Account(
            id=row.id,
            provider_id=row.provider_id,
            login=row.login,
            plan=plan,
            usage=Usage(
                repos_count=row.repos_count,
                repos_limit=row.repos_limit,
                loc_count=row.loc_count,
                loc_limit=row.loc_limit,
            ),
            repos=await self.list_repos(row.id),
            stripe_customer_id=row.stripe_customer_id,
            stripe_subscription_id=row.stripe_subscription_id,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )


class PublicStatsRepository:
    """Global run counters shown on the public landing page."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def record_run(self, loc: int) -> None:
        """Increment ``runs`` by one and ``loc_analyzed`` by *loc*."""
        now = datetime.now(UTC)
        result = await self._session.execute(
            update(PublicStatsTable)
            .where(PublicStatsTable.id == PUBLIC_STATS_ROW_ID)
            .values(
                runs=PublicStatsTable.runs + 1,
                loc_analyzed=PublicStatsTable.loc_analyzed + loc,
                last_run_at=now,
            )
        )
        if not result.rowcount:  # type: ignore[attr-defined]
            inserted = await _dialect_insert_ignore(
                self._session,
                PublicStatsTable,
                values={"id": PUBLIC_STATS_ROW_ID, "runs": 1, "loc_analyzed": loc, "last_run_at": now},
                index_elements=["id"],
            )
            if not inserted:
                # Another request created the row first.
                await self.record_run(loc)
                return
        await self._session.flush()

    async def get(self) -> dict[str, Any]:
        row = await self._session.get(PublicStatsTable, PUBLIC_STATS_ROW_ID, populate_existing=True)
        if row is None:
            return {"runs": 0, "loc_analyzed": 0, "last_run_at": None}
        return {
            "runs": row.runs,
            "loc_analyzed": row.loc_analyzed,
            "last_run_at": row.last_run_at.isoformat() if row.last_run_at else None,
        }
