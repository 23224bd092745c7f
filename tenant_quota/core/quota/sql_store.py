from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, case, literal, update
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.sql import ColumnElement

from tenant_quota.core.db import build_session_factory
from tenant_quota.core.quota.exceptions import StorageUnavailable, TenantNotFoundError
from tenant_quota.core.quota.store import (
    WINDOWED_COUNTERS,
    AccountSnapshot,
    IncrementResult,
    check_limit,
    validate_counter,
)
from tenant_quota.core.quota.windows import MonthlyWindow, as_utc, utcnow
from tenant_quota.core.repositories.tenant_accounts import TenantAccountRepository
from tenant_quota.models.tenant_account import TenantAccount

logger = logging.getLogger(__name__)

_STORAGE_ERRORS = (OperationalError, InterfaceError, PoolTimeoutError, asyncio.TimeoutError, OSError)


def _ts(value: datetime) -> ColumnElement[datetime]:
    return literal(as_utc(value), type_=DateTime(timezone=True))


def _check_amount(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount < 1:
        raise ValueError(f"amount must be a positive integer, got {amount!r}")


def _snapshot(account: TenantAccount) -> AccountSnapshot:
    return AccountSnapshot(
        tenant_id=account.tenant_id,
        tier=account.tier,
        current_projects=account.current_projects,
        current_month_expenses=account.current_month_expenses,
        current_users=account.current_users,
        expense_counter_reset_at=as_utc(account.expense_counter_reset_at),
        updated_at=as_utc(account.updated_at),
    )


class SqlCounterStore:
    """Counter engine over a relational ``tenant_accounts`` table.

    Every limit check is the ``WHERE`` clause of the ``UPDATE`` that applies
    the delta, and success is signalled by the row coming back from
    ``RETURNING``. The database's row lock orders concurrent writers; a
    writer that was blocked re-evaluates the predicate against the committed
    value, so no two callers can both pass the check on the same stale value.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        window: MonthlyWindow,
        *,
        engine: AsyncEngine | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.window = window
        self._engine = engine

    @classmethod
    def from_engine(cls, engine: AsyncEngine, window: MonthlyWindow) -> SqlCounterStore:
        return cls(build_session_factory(engine), window, engine=engine)

    async def aclose(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_factory() as session, session.begin():
                yield session
        except _STORAGE_ERRORS as exc:
            logger.error("Counter store unavailable: %s", exc)
            raise StorageUnavailable(str(exc)) from exc

    def _effective(self, counter: str, now: datetime) -> ColumnElement[int]:
        column = getattr(TenantAccount, counter)
        if counter not in WINDOWED_COUNTERS:
            return column
        return case((TenantAccount.expense_counter_reset_at <= _ts(now), 0), else_=column)

    def _mutation(self, counter: str, value: ColumnElement[int], now: datetime) -> dict[str, Any]:
        values: dict[str, Any] = {counter: value, "updated_at": _ts(now)}
        if counter in WINDOWED_COUNTERS:
            # Evaluated against the pre-update row, same as the counter value.
            values["expense_counter_reset_at"] = case(
                (
                    TenantAccount.expense_counter_reset_at <= _ts(now),
                    _ts(self.window.next_reset(now)),
                ),
                else_=TenantAccount.expense_counter_reset_at,
            )
        return values

    async def get_account(self, tenant_id: str) -> AccountSnapshot | None:
        async with self._transaction() as session:
            account = await TenantAccountRepository(session).get(tenant_id)
            return _snapshot(account) if account is not None else None

    async def create_account(
        self,
        tenant_id: str,
        tier: str,
        *,
        now: datetime | None = None,
        initial_users: int = 0,
    ) -> AccountSnapshot:
        now = now or utcnow()
        try:
            async with self._transaction() as session:
                repo = TenantAccountRepository(session)
                existing = await repo.get(tenant_id)
                if existing is not None:
                    return _snapshot(existing)
                account = await repo.create(
                    tenant_id,
                    tier=tier,
                    expense_counter_reset_at=self.window.next_reset(now),
                    current_users=initial_users,
                    now=as_utc(now),
                )
                created = _snapshot(account)
        except IntegrityError:
            logger.info("Tenant account %s was opened concurrently", tenant_id)
            existing_snapshot = await self.get_account(tenant_id)
            if existing_snapshot is None:
                raise
            return existing_snapshot

        logger.info("Opened tenant account %s on tier=%s", tenant_id, tier)
        return created

    async def set_tier(self, tenant_id: str, tier: str, *, now: datetime | None = None) -> bool:
        now = now or utcnow()
        async with self._transaction() as session:
            return await TenantAccountRepository(session).set_tier(tenant_id, tier, now=as_utc(now))

    async def try_increment(
        self,
        tenant_id: str,
        counter: str,
        limit: int | None,
        amount: int = 1,
        *,
        now: datetime | None = None,
    ) -> IncrementResult:
        validate_counter(counter)
        _check_amount(amount)
        limit = check_limit(limit)
        now = now or utcnow()
        column = getattr(TenantAccount, counter)
        effective = self._effective(counter, now)

        stmt = (
            update(TenantAccount)
            .where(TenantAccount.tenant_id == tenant_id)
            .values(self._mutation(counter, effective + amount, now))
            .returning(column)
            .execution_options(synchronize_session=False)
        )
        if limit is not None:
            stmt = stmt.where(effective + amount <= limit)

        async with self._transaction() as session:
            updated = (await session.execute(stmt)).scalar_one_or_none()
            if updated is not None:
                logger.debug("tenant=%s %s -> %s (limit=%s)", tenant_id, counter, updated, limit)
                return IncrementResult(success=True, current_usage=int(updated))
            account = await TenantAccountRepository(session).get(tenant_id)

        if account is None:
            raise TenantNotFoundError(tenant_id)

        usage = getattr(account, counter)
        if counter in WINDOWED_COUNTERS:
            usage = self.window.ensure_current_window(usage, account.expense_counter_reset_at, now).usage
        return IncrementResult(success=False, current_usage=int(usage))

    async def decrement(
        self,
        tenant_id: str,
        counter: str,
        amount: int = 1,
        *,
        now: datetime | None = None,
    ) -> int:
        validate_counter(counter)
        _check_amount(amount)
        now = now or utcnow()
        column = getattr(TenantAccount, counter)
        effective = self._effective(counter, now)
        clamped = case((effective > amount, effective - amount), else_=0)

        stmt = (
            update(TenantAccount)
            .where(TenantAccount.tenant_id == tenant_id)
            .values(self._mutation(counter, clamped, now))
            .returning(column)
            .execution_options(synchronize_session=False)
        )
        async with self._transaction() as session:
            updated = (await session.execute(stmt)).scalar_one_or_none()

        if updated is None:
            raise TenantNotFoundError(tenant_id)
        logger.debug("tenant=%s %s released -> %s", tenant_id, counter, updated)
        return int(updated)
