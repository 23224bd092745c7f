from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path

import pytest
import pytest_asyncio

from tenant_quota.core.db import build_engine
from tenant_quota.core.quota.sql_store import SqlCounterStore
from tenant_quota.core.quota.store import CounterStore
from tenant_quota.core.quota.windows import MonthlyWindow
from tenant_quota.models.base import Base

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
NEXT_RESET = datetime(2026, 11, 1, tzinfo=timezone.utc)
FOLLOWING_RESET = datetime(2026, 12, 1, tzinfo=timezone.utc)


@asynccontextmanager
async def _sql_store(path: Path) -> AsyncIterator[SqlCounterStore]:
    engine = build_engine(f"sqlite+aiosqlite:///{path}", connect_args={"timeout": 30})
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    store = SqlCounterStore.from_engine(engine, MonthlyWindow("UTC"))
    try:
        yield store
    finally:
        await store.aclose()


@asynccontextmanager
async def _redis_store() -> AsyncIterator[CounterStore]:
    pytest.importorskip("lupa")
    fakeredis = pytest.importorskip("fakeredis")
    from tenant_quota.core.quota.redis_store import RedisCounterStore

    client = fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)
    store = RedisCounterStore(client, MonthlyWindow("UTC"), key_prefix="test")
    try:
        yield store
    finally:
        await store.aclose()


@pytest_asyncio.fixture
async def sql_store(tmp_path: Path) -> AsyncIterator[SqlCounterStore]:
    async with _sql_store(tmp_path / "quota.db") as store:
        yield store


@pytest_asyncio.fixture
async def redis_store() -> AsyncIterator[CounterStore]:
    async with _redis_store() as store:
        yield store


@pytest_asyncio.fixture(params=["sql", "redis"])
async def counter_store(request: pytest.FixtureRequest, tmp_path: Path) -> AsyncIterator[CounterStore]:
    if request.param == "sql":
        async with _sql_store(tmp_path / "quota.db") as store:
            yield store
    else:
        async with _redis_store() as store:
            yield store
