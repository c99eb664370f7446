"""Shared fixtures for diff engine unit tests.

Provides a ``ChangedFile`` factory, signed-webhook helpers and an
in-memory aiosqlite session with all state tables created.
"""

from __future__ import annotations

import json
from collections.abc import AsyncGenerator, Callable
from typing import Any

import pytest
import pytest_asyncio
from diff_engine.events.signature import compute_signature
from diff_engine.models.files import ChangedFile
from diff_engine.state.database import create_tables, get_engine
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

WEBHOOK_SECRET = "test-webhook-secret"


# ------------------------------------------------------------------ #
# Changed files
# ------------------------------------------------------------------ #


@pytest.fixture()
def make_file() -> Callable[..., ChangedFile]:
    """Return a factory for ``ChangedFile`` instances with sensible defaults."""

    def _make(
        filename: str = "src/app.ts",
        status: str = "modified",
        changes: int = 10,
        patch: str | None = "@@ -1 +1 @@\n-old\n+new",
    ) -> ChangedFile:
        return ChangedFile(filename=filename, status=status, changes=changes, patch=patch)

    return _make


# ------------------------------------------------------------------ #
# Webhooks
# ------------------------------------------------------------------ #


@pytest.fixture()
def sign() -> Callable[[dict[str, Any]], tuple[str, bytes]]:
    """Serialise a payload and return ``(signature_header, raw_body)``."""

    def _sign(payload: dict[str, Any]) -> tuple[str, bytes]:
        body = json.dumps(payload).encode("utf-8")
        return compute_signature(body, WEBHOOK_SECRET), body

    return _sign


# ------------------------------------------------------------------ #
# Database
# ------------------------------------------------------------------ #


@pytest_asyncio.fixture
async def async_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield a session bound to a fresh in-memory database."""
    engine = get_engine("sqlite+aiosqlite:///:memory:")
    await create_tables(engine)
    factory = async_sessionmaker(engine, expire_on_commit=False)
    async with factory() as session:
        yield session
    await engine.dispose()
