from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from tenant_quota.core.quota.exceptions import ConfigurationError
from tenant_quota.core.quota.tiers import UNLIMITED
from tenant_quota.core.quota.windows import MonthlyWindow

COUNTER_NAMES = ("current_projects", "current_month_expenses", "current_users")
WINDOWED_COUNTERS = frozenset({"current_month_expenses"})


def validate_counter(counter: str) -> str:
    if counter not in COUNTER_NAMES:
        raise ConfigurationError(f"Unknown counter {counter!r}")
    return counter


def check_limit(limit: int | None) -> int | None:
    """Normalize a limit argument; ``None`` and ``-1`` both mean no check."""
    if limit is None or limit == UNLIMITED:
        return None
    if isinstance(limit, bool) or not isinstance(limit, int) or limit < UNLIMITED:
        raise ConfigurationError(f"Limit must be an integer >= -1, got {limit!r}")
    return limit


@dataclass(slots=True)
class IncrementResult:
    success: bool
    current_usage: int


@dataclass(slots=True)
class AccountSnapshot:
    tenant_id: str
    tier: str
    current_projects: int
    current_month_expenses: int
    current_users: int
    expense_counter_reset_at: datetime
    updated_at: datetime

    def counter(self, name: str) -> int:
        return getattr(self, validate_counter(name))


class CounterStore(Protocol):
    """Durable tenant account storage with an atomic conditional increment.

    Implementations never cache counter values between calls; every
    operation is a fresh round trip to the store.
    A ``limit`` of ``None`` or ``-1`` increments without a check, and an
    omitted ``now`` means the current UTC time.
    """

    window: MonthlyWindow

    async def get_account(self, tenant_id: str) -> AccountSnapshot | None: ...

    async def create_account(
        self,
        tenant_id: str,
        tier: str,
        *,
        now: datetime | None = None,
        initial_users: int = 0,
    ) -> AccountSnapshot: ...

    async def set_tier(self, tenant_id: str, tier: str, *, now: datetime | None = None) -> bool: ...

    async def try_increment(
        self,
        tenant_id: str,
        counter: str,
        limit: int | None,
        amount: int = 1,
        *,
        now: datetime | None = None,
    ) -> IncrementResult: ...

    async def decrement(
        self,
        tenant_id: str,
        counter: str,
        amount: int = 1,
        *,
        now: datetime | None = None,
    ) -> int: ...

    async def aclose(self) -> None: ...
