"""SQLAlchemy 2.0 ORM table definitions for the account state store.

Repositories owned by an account live in their own table keyed by
``(account_id, full_name)`` with a secondary index on ``full_name``.  That
index is the reverse lookup from a pull request's repository to the
account that pays for it.
"""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import (
    BigInteger,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    PrimaryKeyConstraint,
    String,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

PUBLIC_STATS_ROW_ID = 1


def _utcnow() -> datetime:
    """Return the current UTC timestamp (timezone-aware)."""
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Shared declarative base for all state tables."""


class AccountTable(Base):
    """One billed account and its denormalised usage counters."""

    __tablename__ = "accounts"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    provider_id: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)
    login: Mapped[str | None] = mapped_column(String(256), nullable=True)
    plan: Mapped[str] = mapped_column(String(32), nullable=False, default="free")
    repos_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    repos_limit: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    loc_count: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    loc_limit: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    stripe_customer_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    stripe_subscription_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=_utcnow,
        onupdate=_utcnow,
        nullable=False,
    )

    __table_args__ = (Index("ix_accounts_stripe_customer", "stripe_customer_id"),)


class AccountRepoTable(Base):
    """Membership of a lowercased ``owner/repo`` name in an account's repo set."""

    __tablename__ = "account_repos"

    account_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False,
    )
    full_name: Mapped[str] = mapped_column(String(512), nullable=False)
    added_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)

    __table_args__ = (
        PrimaryKeyConstraint("account_id", "full_name"),
        Index("ix_account_repos_full_name", "full_name"),
    )


class PublicStatsTable(Base):
    """Process-wide counters, a single row with ``id == 1``."""

    __tablename__ = "public_stats"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=PUBLIC_STATS_ROW_ID)
    runs: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    loc_analyzed: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    last_run_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
