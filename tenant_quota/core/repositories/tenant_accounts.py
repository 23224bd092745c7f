from __future__ import annotations

from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tenant_quota.models.tenant_account import TenantAccount


class TenantAccountRepository:
    """Plain CRUD over ``tenant_accounts``.

    Counter mutations do not go through here; they live in the SQL counter
    store so the limit check and the write stay a single statement.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, tenant_id: str) -> TenantAccount | None:
        result = await self.session.execute(
            select(TenantAccount).where(TenantAccount.tenant_id == tenant_id)
        )
        return result.scalar_one_or_none()

    async def create(
        self,
        tenant_id: str,
        *,
        tier: str,
        expense_counter_reset_at: datetime,
        current_users: int = 0,
        now: datetime,
    ) -> TenantAccount:
        instance = TenantAccount(
            tenant_id=tenant_id,
            tier=tier,
            current_projects=0,
            current_month_expenses=0,
            current_users=current_users,
            expense_counter_reset_at=expense_counter_reset_at,
            created_at=now,
            updated_at=now,
        )
        self.session.add(instance)
        await self.session.flush()
        await self.session.refresh(instance)
        return instance

    async def set_tier(self, tenant_id: str, tier: str, *, now: datetime) -> bool:
        result = await self.session.execute(
            update(TenantAccount)
            .where(TenantAccount.tenant_id == tenant_id)
            .values(tier=tier, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return (result.rowcount or 0) > 0
