from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime, timezone

import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from tenant_quota.core.quota.exceptions import StorageUnavailable, TenantNotFoundError
from tenant_quota.core.quota.store import (
    WINDOWED_COUNTERS,
    AccountSnapshot,
    IncrementResult,
    check_limit,
    validate_counter,
)
from tenant_quota.core.quota.windows import MonthlyWindow, as_utc, utcnow

logger = logging.getLogger(__name__)

# ARGV: counter, amount, limit (-1 = no check), now, windowed flag, next reset
_TRY_INCREMENT_LUA = """
local key = KEYS[1]
local counter = ARGV[1]
local amount = tonumber(ARGV[2])
local limit = tonumber(ARGV[3])
local now = tonumber(ARGV[4])
if redis.call('EXISTS', key) == 0 then
  return {-1, 0}
end
local current = tonumber(redis.call('HGET', key, counter) or '0')
local reset_due = false
if ARGV[5] == '1' then
  local reset_at = tonumber(redis.call('HGET', key, 'expense_counter_reset_at') or '0')
  if now >= reset_at then
    current = 0
    reset_due = true
  end
end
if limit >= 0 and current + amount > limit then
  return {0, current}
end
local updated = current + amount
redis.call('HSET', key, counter, updated, 'updated_at', ARGV[4])
if reset_due then
  redis.call('HSET', key, 'expense_counter_reset_at', ARGV[6])
end
return {1, updated}
"""

# ARGV: counter, amount, now, windowed flag, next reset
_DECREMENT_LUA = """
local key = KEYS[1]
local counter = ARGV[1]
local amount = tonumber(ARGV[2])
local now = tonumber(ARGV[3])
if redis.call('EXISTS', key) == 0 then
  return -1
end
local current = tonumber(redis.call('HGET', key, counter) or '0')
if ARGV[4] == '1' then
  local reset_at = tonumber(redis.call('HGET', key, 'expense_counter_reset_at') or '0')
  if now >= reset_at then
    current = 0
    redis.call('HSET', key, 'expense_counter_reset_at', ARGV[5])
  end
end
local updated = current - amount
if updated < 0 then
  updated = 0
end
redis.call('HSET', key, counter, updated, 'updated_at', ARGV[3])
return updated
"""

# ARGV: tier, initial users, reset at, now
_CREATE_LUA = """
local key = KEYS[1]
if redis.call('EXISTS', key) == 1 then
  return 0
end
redis.call('HSET', key,
  'tier', ARGV[1],
  'current_projects', '0',
  'current_month_expenses', '0',
  'current_users', ARGV[2],
  'expense_counter_reset_at', ARGV[3],
  'created_at', ARGV[4],
  'updated_at', ARGV[4])
return 1
"""

# ARGV: tier, now
_SET_TIER_LUA = """
local key = KEYS[1]
if redis.call('EXISTS', key) == 0 then
  return 0
end
redis.call('HSET', key, 'tier', ARGV[1], 'updated_at', ARGV[2])
return 1
"""


def _epoch(value: datetime) -> str:
    return f"{as_utc(value).timestamp():.6f}"


def _from_epoch(value: str | None) -> datetime:
    return datetime.fromtimestamp(float(value or 0), tz=timezone.utc)


def _check_amount(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount < 1:
        raise ValueError(f"amount must be a positive integer, got {amount!r}")


class RedisCounterStore:
    """Counter engine over one Redis hash per tenant.

    Each operation is a single Lua script, which Redis runs without
    interleaving any other command, so the window reset, the limit check and
    the write are one step.
    """

    def __init__(self, client: redis.Redis, window: MonthlyWindow, *, key_prefix: str = "tenant_quota") -> None:
        self._redis = client
        self.window = window
        self.key_prefix = key_prefix
        self._try_increment = client.register_script(_TRY_INCREMENT_LUA)
        self._decrement = client.register_script(_DECREMENT_LUA)
        self._create = client.register_script(_CREATE_LUA)
        self._set_tier = client.register_script(_SET_TIER_LUA)

    @classmethod
    def from_url(cls, url: str, window: MonthlyWindow, *, key_prefix: str = "tenant_quota") -> RedisCounterStore:
        return cls(redis.from_url(url, decode_responses=True), window, key_prefix=key_prefix)

    async def aclose(self) -> None:
        await self._redis.aclose()

    def _key(self, tenant_id: str) -> str:
        return f"{self.key_prefix}:account:{tenant_id}"

    async def _run(self, script, tenant_id: str, args: Sequence[object]):  # noqa: ANN001, ANN202
        try:
            return await script(keys=[self._key(tenant_id)], args=list(args))
        except (RedisConnectionError, RedisTimeoutError) as exc:
            logger.error("Counter store unavailable: %s", exc)
            raise StorageUnavailable(str(exc)) from exc

    async def get_account(self, tenant_id: str) -> AccountSnapshot | None:
        try:
            data = await self._redis.hgetall(self._key(tenant_id))
        except (RedisConnectionError, RedisTimeoutError) as exc:
            logger.error("Counter store unavailable: %s", exc)
            raise StorageUnavailable(str(exc)) from exc
        if not data:
            return None
        return AccountSnapshot(
            tenant_id=tenant_id,
            tier=data.get("tier", ""),
            current_projects=int(data.get("current_projects", 0)),
            current_month_expenses=int(data.get("current_month_expenses", 0)),
            current_users=int(data.get("current_users", 0)),
            expense_counter_reset_at=_from_epoch(data.get("expense_counter_reset_at")),
            updated_at=_from_epoch(data.get("updated_at")),
        )

    async def create_account(
        self,
        tenant_id: str,
        tier: str,
        *,
        now: datetime | None = None,
        initial_users: int = 0,
    ) -> AccountSnapshot:
        now = now or utcnow()
        created = await self._run(
            self._create,
            tenant_id,
            [tier, int(initial_users), _epoch(self.window.next_reset(now)), _epoch(now)],
        )
        if int(created) == 1:
            logger.info("Opened tenant account %s on tier=%s", tenant_id, tier)
        snapshot = await self.get_account(tenant_id)
        if snapshot is None:
            raise TenantNotFoundError(tenant_id)
        return snapshot

    async def set_tier(self, tenant_id: str, tier: str, *, now: datetime | None = None) -> bool:
        now = now or utcnow()
        return int(await self._run(self._set_tier, tenant_id, [tier, _epoch(now)])) == 1

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
        windowed = counter in WINDOWED_COUNTERS
        status, usage = await self._run(
            self._try_increment,
            tenant_id,
            [
                counter,
                amount,
                -1 if limit is None else limit,
                _epoch(now),
                "1" if windowed else "0",
                _epoch(self.window.next_reset(now)) if windowed else "",
            ],
        )
        if int(status) == -1:
            raise TenantNotFoundError(tenant_id)
        return IncrementResult(success=int(status) == 1, current_usage=int(usage))

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
        windowed = counter in WINDOWED_COUNTERS
        updated = int(
            await self._run(
                self._decrement,
                tenant_id,
                [
                    counter,
                    amount,
                    _epoch(now),
                    "1" if windowed else "0",
                    _epoch(self.window.next_reset(now)) if windowed else "",
                ],
            )
        )
        if updated == -1:
            raise TenantNotFoundError(tenant_id)
        return updated
