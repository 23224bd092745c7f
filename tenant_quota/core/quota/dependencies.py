from __future__ import annotations

from functools import lru_cache

from tenant_quota.core.config import settings
from tenant_quota.core.quota.accounts import TenantAccounts
from tenant_quota.core.quota.gate import QuotaGate
from tenant_quota.core.quota.lifecycle import ResourceLifecycle
from tenant_quota.core.quota.store import CounterStore
from tenant_quota.core.quota.windows import MonthlyWindow


@lru_cache(maxsize=1)
def get_counter_store() -> CounterStore:
    window = MonthlyWindow(settings.quota_reference_timezone)
    if settings.quota_backend == "redis":
        from tenant_quota.core.quota.redis_store import RedisCounterStore

        return RedisCounterStore.from_url(
            settings.redis_url,
            window,
            key_prefix=settings.quota_redis_key_prefix,
        )

    from tenant_quota.core.db import engine
    from tenant_quota.core.quota.sql_store import SqlCounterStore

    return SqlCounterStore.from_engine(engine, window)


async def close_counter_store() -> None:
    if get_counter_store.cache_info().currsize:
        await get_counter_store().aclose()
        get_counter_store.cache_clear()


def get_quota_gate() -> QuotaGate:
    return QuotaGate(get_counter_store(), track_unlimited_usage=settings.quota_track_unlimited_usage)


def get_tenant_accounts() -> TenantAccounts:
    return TenantAccounts(get_counter_store())


def get_resource_lifecycle() -> ResourceLifecycle:
    return ResourceLifecycle(
        get_quota_gate(),
        reservation_timeout_seconds=settings.quota_reservation_timeout_seconds,
        compensation_max_attempts=settings.quota_compensation_max_attempts,
        compensation_initial_delay_seconds=settings.quota_compensation_initial_delay_seconds,
        compensation_max_delay_seconds=settings.quota_compensation_max_delay_seconds,
    )
