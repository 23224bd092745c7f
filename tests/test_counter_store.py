from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from tenant_quota.core.quota.exceptions import ConfigurationError, TenantNotFoundError
from tenant_quota.core.quota.store import CounterStore

from conftest import FOLLOWING_RESET, NEXT_RESET, NOW

PROJECTS = "current_projects"
EXPENSES = "current_month_expenses"
USERS = "current_users"


async def _seed(store: CounterStore, tenant_id: str, counter: str, value: int) -> None:
    await store.try_increment(tenant_id, counter, None, value, now=NOW)


@pytest.mark.asyncio
async def test_create_account_starts_empty(counter_store: CounterStore) -> None:
    account = await counter_store.create_account("acme", "trial", now=NOW)

    assert account.tenant_id == "acme"
    assert account.tier == "trial"
    assert (account.current_projects, account.current_month_expenses, account.current_users) == (0, 0, 0)
    assert account.expense_counter_reset_at == NEXT_RESET
    assert await counter_store.get_account("missing") is None


@pytest.mark.asyncio
async def test_create_account_is_idempotent(counter_store: CounterStore) -> None:
    await counter_store.create_account("acme", "trial", now=NOW, initial_users=1)
    await _seed(counter_store, "acme", PROJECTS, 2)

    again = await counter_store.create_account("acme", "enterprise", now=NOW)

    assert again.tier == "trial"
    assert again.current_projects == 2
    assert again.current_users == 1


@pytest.mark.asyncio
async def test_increment_allows_up_to_limit_inclusive(counter_store: CounterStore) -> None:
    await counter_store.create_account("acme", "trial", now=NOW)

    results = [await counter_store.try_increment("acme", PROJECTS, 3, now=NOW) for _ in range(4)]

    assert [r.success for r in results] == [True, True, True, False]
    assert [r.current_usage for r in results] == [1, 2, 3, 3]
    account = await counter_store.get_account("acme")
    assert account is not None and account.current_projects == 3


@pytest.mark.asyncio
async def test_increment_with_amount_is_all_or_nothing(counter_store: CounterStore) -> None:
    await counter_store.create_account("acme", "trial", now=NOW)
    await _seed(counter_store, "acme", EXPENSES, 48)

    denied = await counter_store.try_increment("acme", EXPENSES, 50, 3, now=NOW)
    allowed = await counter_store.try_increment("acme", EXPENSES, 50, 2, now=NOW)

    assert (denied.success, denied.current_usage) == (False, 48)
    assert (allowed.success, allowed.current_usage) == (True, 50)


@pytest.mark.asyncio
async def test_zero_limit_denies_everything(counter_store: CounterStore) -> None:
    await counter_store.create_account("acme", "trial", now=NOW)

    result = await counter_store.try_increment("acme", USERS, 0, now=NOW)

    assert (result.success, result.current_usage) == (False, 0)


@pytest.mark.asyncio
async def test_increment_without_limit_always_succeeds(counter_store: CounterStore) -> None:
    await counter_store.create_account("acme", "enterprise", now=NOW)

    result = await counter_store.try_increment("acme", PROJECTS, None, 500, now=NOW)
    result = await counter_store.try_increment("acme", PROJECTS, None, now=NOW)

    assert (result.success, result.current_usage) == (True, 501)


@pytest.mark.asyncio
async def test_concurrent_increments_never_overshoot(counter_store: CounterStore) -> None:
    await counter_store.create_account("acme", "trial", now=NOW)

    results = await asyncio.gather(
        *(counter_store.try_increment("acme", PROJECTS, 40, now=NOW) for _ in range(100))
    )

    assert sum(r.success for r in results) == 40
    assert sorted(r.current_usage for r in results if r.success) == list(range(1, 41))
    account = await counter_store.get_account("acme")
    assert account is not None and account.current_projects == 40


@pytest.mark.asyncio
async def test_concurrent_increments_within_limit_all_succeed(counter_store: CounterStore) -> None:
    await counter_store.create_account("acme", "trial", now=NOW)

    results = await asyncio.gather(
        *(counter_store.try_increment("acme", PROJECTS, 100, now=NOW) for _ in range(100))
    )

    assert all(r.success for r in results)
    account = await counter_store.get_account("acme")
    assert account is not None and account.current_projects == 100


@pytest.mark.asyncio
async def test_concurrent_increments_for_last_slot(counter_store: CounterStore) -> None:
    await counter_store.create_account("acme", "trial", now=NOW)
    await _seed(counter_store, "acme", PROJECTS, 99)

    results = await asyncio.gather(
        *(counter_store.try_increment("acme", PROJECTS, 100, now=NOW) for _ in range(100))
    )

    assert sum(r.success for r in results) == 1
    assert all(r.current_usage == 100 for r in results)


@pytest.mark.asyncio
async def test_decrement_is_floor_clamped(counter_store: CounterStore) -> None:
    await counter_store.create_account("acme", "trial", now=NOW)
    await _seed(counter_store, "acme", PROJECTS, 1)

    assert await counter_store.decrement("acme", PROJECTS, now=NOW) == 0
    # A duplicate release must not take the counter below zero.
    assert await counter_store.decrement("acme", PROJECTS, now=NOW) == 0
    await _seed(counter_store, "acme", PROJECTS, 2)
    assert await counter_store.decrement("acme", PROJECTS, 5, now=NOW) == 0


@pytest.mark.asyncio
async def test_release_frees_slot_for_next_increment(counter_store: CounterStore) -> None:
    await counter_store.create_account("acme", "trial", now=NOW)
    await _seed(counter_store, "acme", PROJECTS, 3)

    assert (await counter_store.try_increment("acme", PROJECTS, 3, now=NOW)).success is False
    assert await counter_store.decrement("acme", PROJECTS, now=NOW) == 2
    result = await counter_store.try_increment("acme", PROJECTS, 3, now=NOW)
    assert (result.success, result.current_usage) == (True, 3)


@pytest.mark.asyncio
async def test_window_resets_on_first_increment_at_boundary(counter_store: CounterStore) -> None:
    await counter_store.create_account("acme", "trial", now=NOW)
    await _seed(counter_store, "acme", EXPENSES, 50)

    before = await counter_store.try_increment("acme", EXPENSES, 50, now=NEXT_RESET - timedelta(seconds=1))
    after = await counter_store.try_increment("acme", EXPENSES, 50, now=NEXT_RESET)

    assert (before.success, before.current_usage) == (False, 50)
    assert (after.success, after.current_usage) == (True, 1)
    account = await counter_store.get_account("acme")
    assert account is not None
    assert account.current_month_expenses == 1
    assert account.expense_counter_reset_at == FOLLOWING_RESET


@pytest.mark.asyncio
async def test_window_reset_under_concurrency_happens_once(counter_store: CounterStore) -> None:
    await counter_store.create_account("acme", "trial", now=NOW)
    await _seed(counter_store, "acme", EXPENSES, 35)

    results = await asyncio.gather(
        *(counter_store.try_increment("acme", EXPENSES, 50, now=NEXT_RESET) for _ in range(20))
    )

    assert all(r.success for r in results)
    account = await counter_store.get_account("acme")
    assert account is not None
    assert account.current_month_expenses == 20
    assert account.expense_counter_reset_at == FOLLOWING_RESET


@pytest.mark.asyncio
async def test_denied_increment_reports_current_window_usage(counter_store: CounterStore) -> None:
    await counter_store.create_account("acme", "trial", now=NOW)
    await _seed(counter_store, "acme", EXPENSES, 30)

    result = await counter_store.try_increment("acme", EXPENSES, 50, 51, now=NEXT_RESET)

    assert (result.success, result.current_usage) == (False, 0)


@pytest.mark.asyncio
async def test_window_does_not_touch_other_counters(counter_store: CounterStore) -> None:
    await counter_store.create_account("acme", "trial", now=NOW)
    await _seed(counter_store, "acme", PROJECTS, 2)

    result = await counter_store.try_increment("acme", PROJECTS, 3, now=NEXT_RESET + timedelta(days=3))

    assert (result.success, result.current_usage) == (True, 3)
    account = await counter_store.get_account("acme")
    assert account is not None and account.expense_counter_reset_at == NEXT_RESET


@pytest.mark.asyncio
async def test_decrement_after_boundary_folds_in_window_reset(counter_store: CounterStore) -> None:
    await counter_store.create_account("acme", "trial", now=NOW)
    await _seed(counter_store, "acme", EXPENSES, 10)

    assert await counter_store.decrement("acme", EXPENSES, now=NEXT_RESET) == 0
    account = await counter_store.get_account("acme")
    assert account is not None and account.expense_counter_reset_at == FOLLOWING_RESET


@pytest.mark.asyncio
async def test_set_tier_leaves_counters_alone(counter_store: CounterStore) -> None:
    await counter_store.create_account("acme", "professional", now=NOW)
    await _seed(counter_store, "acme", PROJECTS, 8)

    assert await counter_store.set_tier("acme", "trial", now=NOW) is True
    account = await counter_store.get_account("acme")
    assert account is not None
    assert account.tier == "trial"
    assert account.current_projects == 8

    assert await counter_store.set_tier("missing", "trial", now=NOW) is False


@pytest.mark.asyncio
async def test_unknown_tenant_raises(counter_store: CounterStore) -> None:
    with pytest.raises(TenantNotFoundError):
        await counter_store.try_increment("missing", PROJECTS, 3, now=NOW)
    with pytest.raises(TenantNotFoundError):
        await counter_store.try_increment("missing", PROJECTS, None, now=NOW)
    with pytest.raises(TenantNotFoundError):
        await counter_store.decrement("missing", PROJECTS, now=NOW)


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [0, -1, True, 1.5])
async def test_invalid_amount_is_rejected(counter_store: CounterStore, amount: object) -> None:
    await counter_store.create_account("acme", "trial", now=NOW)

    with pytest.raises(ValueError):
        await counter_store.try_increment("acme", PROJECTS, 3, amount, now=NOW)  # type: ignore[arg-type]
    with pytest.raises(ValueError):
        await counter_store.decrement("acme", PROJECTS, amount, now=NOW)  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_unknown_counter_is_rejected(counter_store: CounterStore) -> None:
    await counter_store.create_account("acme", "trial", now=NOW)

    with pytest.raises(ConfigurationError):
        await counter_store.try_increment("acme", "current_invoices", 3, now=NOW)


@pytest.mark.asyncio
async def test_unlimited_sentinel_increments_without_check(counter_store: CounterStore) -> None:
    await counter_store.create_account("acme", "enterprise", now=NOW)
    await _seed(counter_store, "acme", PROJECTS, 1000)

    result = await counter_store.try_increment("acme", PROJECTS, -1, now=NOW)

    assert (result.success, result.current_usage) == (True, 1001)


@pytest.mark.asyncio
@pytest.mark.parametrize("limit", [-2, True, 2.5])
async def test_malformed_limit_is_rejected(counter_store: CounterStore, limit: object) -> None:
    await counter_store.create_account("acme", "trial", now=NOW)

    with pytest.raises(ConfigurationError):
        await counter_store.try_increment("acme", PROJECTS, limit, now=NOW)  # type: ignore[arg-type]
    account = await counter_store.get_account("acme")
    assert account is not None and account.current_projects == 0


@pytest.mark.asyncio
async def test_operations_default_to_current_time(counter_store: CounterStore) -> None:
    account = await counter_store.create_account("acme", "trial")
    assert account.expense_counter_reset_at > datetime.now(timezone.utc)

    result = await counter_store.try_increment("acme", EXPENSES, 50)
    assert (result.success, result.current_usage) == (True, 1)
    assert await counter_store.decrement("acme", EXPENSES) == 0
    assert await counter_store.set_tier("acme", "professional") is True
