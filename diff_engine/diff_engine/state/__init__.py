"""Persistent account and statistics state."""

from __future__ import annotations

from diff_engine.state.database import create_tables, get_engine, session_scope
from diff_engine.state.repository import AccountRepository, PublicStatsRepository
from diff_engine.state.tables import AccountRepoTable, AccountTable, Base, PublicStatsTable

__all__ = [
    "AccountRepoTable",
    "AccountRepository",
    "AccountTable",
    "Base",
    "PublicStatsRepository",
    "PublicStatsTable",
    "create_tables",
    "get_engine",
    "session_scope",
]
