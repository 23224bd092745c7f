from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from tenant_quota.core.quota.events import TierChangeEvent
from tenant_quota.core.quota.exceptions import TenantNotFoundError
from tenant_quota.core.quota.store import AccountSnapshot, CounterStore
from tenant_quota.core.quota.tiers import TierRegistry, get_tier_registry
from tenant_quota.core.quota.windows import utcnow

logger = logging.getLogger(__name__)


class TenantAccounts:
    def __init__(
        self,
        store: CounterStore,
        registry: TierRegistry | None = None,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.registry = registry or get_tier_registry()
        self._clock = clock

    async def open_account(self, tenant_id: str, tier: str = "trial", *, initial_users: int = 0) -> AccountSnapshot:
        if initial_users < 0:
            raise ValueError("initial_users must be >= 0")
        limits = self.registry.get_limits(tier)
        return await self.store.create_account(
            tenant_id,
            limits.tier,
            now=self._clock(),
            initial_users=initial_users,
        )

    async def apply_tier_change(self, event: TierChangeEvent) -> AccountSnapshot:
        """Update only the tier. Counters are left untouched, even when they exceed the new limits."""
        limits = self.registry.get_limits(event.new_tier)
        updated = await self.store.set_tier(event.tenant_id, limits.tier, now=self._clock())
        if not updated:
            raise TenantNotFoundError(event.tenant_id)
        logger.info("Tenant %s moved to tier=%s", event.tenant_id, limits.tier)
        account = await self.store.get_account(event.tenant_id)
        if account is None:
            raise TenantNotFoundError(event.tenant_id)
        return account
