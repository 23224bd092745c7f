from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from tenant_quota.core.quota.exceptions import TenantNotFoundError
from tenant_quota.core.quota.store import AccountSnapshot, CounterStore
from tenant_quota.core.quota.tiers import (
    RESOURCE_POLICIES,
    UNLIMITED,
    TierRegistry,
    get_tier_registry,
    is_unlimited,
    resource_policy,
)
from tenant_quota.core.quota.windows import utcnow

logger = logging.getLogger(__name__)


class CounterState(str, Enum):
    UNDER_LIMIT = "UNDER_LIMIT"
    AT_LIMIT = "AT_LIMIT"


def counter_state(usage: int, limit: int) -> CounterState:
    if is_unlimited(limit) or usage < limit:
        return CounterState.UNDER_LIMIT
    return CounterState.AT_LIMIT


@dataclass(slots=True)
class QuotaDecision:
    allowed: bool
    current_usage: int
    limit: int
    reason: str | None = None
    suggested_tier: str | None = None
    # True only when this check incremented the counter and a release owes it back.
    reserved: bool = False


@dataclass(slots=True)
class ResourceUsage:
    current: int
    limit: int
    unlimited: bool
    percentage: float
    state: CounterState
    reset_at: datetime | None = None


@dataclass(slots=True)
class UsageReport:
    tenant_id: str
    tier: str
    display_name: str
    resources: dict[str, ResourceUsage] = field(default_factory=dict)
    features: list[str] = field(default_factory=list)


def _percentage(current: int, limit: int) -> float:
    if is_unlimited(limit):
        return 0.0
    if limit == 0:
        return 100.0
    return min(100.0, current / limit * 100)


class QuotaGate:
    """Admission controller in front of resource creation.

    The tier is read once at the start of a check and is not re-validated
    inside the counter mutation; a concurrent downgrade may admit one
    resource past the new limit.
    """

    def __init__(
        self,
        store: CounterStore,
        registry: TierRegistry | None = None,
        *,
        track_unlimited_usage: bool = True,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.registry = registry or get_tier_registry()
        self.track_unlimited_usage = track_unlimited_usage
        self._clock = clock

    async def _account(self, tenant_id: str) -> AccountSnapshot:
        account = await self.store.get_account(tenant_id)
        if account is None:
            raise TenantNotFoundError(tenant_id)
        return account

    async def check_and_reserve(self, tenant_id: str, resource_type: str, amount: int = 1) -> QuotaDecision:
        policy = resource_policy(resource_type)
        account = await self._account(tenant_id)
        limits = self.registry.get_limits(account.tier)
        limit = getattr(limits, policy.limit_field)
        now = self._clock()

        if is_unlimited(limit):
            if self.track_unlimited_usage:
                result = await self.store.try_increment(tenant_id, policy.counter, None, amount, now=now)
                usage = result.current_usage
            else:
                usage = account.counter(policy.counter)
                if policy.windowed:
                    usage = self.store.window.ensure_current_window(
                        usage, account.expense_counter_reset_at, now
                    ).usage
            return QuotaDecision(
                allowed=True,
                current_usage=usage,
                limit=UNLIMITED,
                reserved=self.track_unlimited_usage,
            )

        result = await self.store.try_increment(tenant_id, policy.counter, limit, amount, now=now)
        if result.success:
            logger.debug(
                "Quota reserved tenant=%s resource=%s usage=%s/%s",
                tenant_id,
                policy.resource_type,
                result.current_usage,
                limit,
            )
            return QuotaDecision(allowed=True, current_usage=result.current_usage, limit=limit, reserved=True)

        suggested = self.registry.suggest_tier(limits.tier, policy.resource_type, result.current_usage, amount)
        logger.info(
            "Quota denied tenant=%s resource=%s usage=%s limit=%s tier=%s suggested=%s",
            tenant_id,
            policy.resource_type,
            result.current_usage,
            limit,
            limits.tier,
            suggested,
        )
        return QuotaDecision(
            allowed=False,
            current_usage=result.current_usage,
            limit=limit,
            reason=policy.reason,
            suggested_tier=suggested,
        )

    async def release(self, tenant_id: str, resource_type: str, amount: int = 1) -> int:
        policy = resource_policy(resource_type)
        remaining = await self.store.decrement(tenant_id, policy.counter, amount, now=self._clock())
        logger.debug("Quota released tenant=%s resource=%s usage=%s", tenant_id, policy.resource_type, remaining)
        return remaining

    async def usage(self, tenant_id: str) -> UsageReport:
        account = await self._account(tenant_id)
        limits = self.registry.get_limits(account.tier)
        now = self._clock()

        report = UsageReport(
            tenant_id=tenant_id,
            tier=limits.tier,
            display_name=limits.display_name,
            features=sorted(limits.features),
        )
        for name, policy in RESOURCE_POLICIES.items():
            current = account.counter(policy.counter)
            reset_at = None
            if policy.windowed:
                window = self.store.window.ensure_current_window(current, account.expense_counter_reset_at, now)
                current, reset_at = window.usage, window.reset_at
            limit = getattr(limits, policy.limit_field)
            report.resources[name] = ResourceUsage(
                current=current,
                limit=limit,
                unlimited=is_unlimited(limit),
                percentage=_percentage(current, limit),
                state=counter_state(current, limit),
                reset_at=reset_at,
            )
        return report
