from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

from tenant_quota.core.quota.events import ResourceCreationRequest, ResourceDeletionEvent
from tenant_quota.core.quota.exceptions import CompensationFailedError, StorageUnavailable
from tenant_quota.core.quota.gate import QuotaDecision, QuotaGate

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(slots=True)
class GuardedCreation(Generic[T]):
    decision: QuotaDecision | None
    resource: T | None = None
    # The reservation timed out after being issued and may or may not have been counted.
    ambiguous: bool = False

    @property
    def created(self) -> bool:
        return self.resource is not None


class ResourceLifecycle:
    """Wires the quota gate around resource persistence and deletion.

    Compensation is a floor-clamped decrement, so issuing it twice for one
    resource can only undercount by the duplicate, never drive the counter
    negative.
    """

    def __init__(
        self,
        gate: QuotaGate,
        *,
        reservation_timeout_seconds: float | None = None,
        compensation_max_attempts: int = 3,
        compensation_initial_delay_seconds: float = 0.2,
        compensation_max_delay_seconds: float = 2.0,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        if compensation_max_attempts < 1:
            raise ValueError("compensation_max_attempts must be >= 1")
        self.gate = gate
        self.reservation_timeout_seconds = reservation_timeout_seconds
        self.compensation_max_attempts = compensation_max_attempts
        self.compensation_initial_delay_seconds = compensation_initial_delay_seconds
        self.compensation_max_delay_seconds = compensation_max_delay_seconds
        self._sleep = sleep

    async def reserve(self, request: ResourceCreationRequest) -> QuotaDecision | None:
        """Run the admission check; ``None`` means the outcome is unknown."""
        check = self.gate.check_and_reserve(request.tenant_id, request.resource_type, request.amount)
        if self.reservation_timeout_seconds is None:
            return await check
        try:
            return await asyncio.wait_for(check, timeout=self.reservation_timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(
                "Reservation outcome unknown after %.2fs tenant=%s resource=%s; treating as reserved",
                self.reservation_timeout_seconds,
                request.tenant_id,
                request.resource_type,
            )
            return None

    async def guarded_create(
        self,
        request: ResourceCreationRequest,
        persist: Callable[[], Awaitable[T]],
    ) -> GuardedCreation[T]:
        decision = await self.reserve(request)
        if decision is not None and not decision.allowed:
            return GuardedCreation(decision=decision)

        try:
            resource = await persist()
        except (Exception, asyncio.CancelledError):
            if decision is not None and not decision.reserved:
                logger.warning(
                    "Persisting %s for tenant=%s failed; nothing was reserved",
                    request.resource_type,
                    request.tenant_id,
                )
                raise
            logger.warning(
                "Persisting %s for tenant=%s failed after reservation; compensating",
                request.resource_type,
                request.tenant_id,
            )
            await asyncio.shield(self.on_resource_created(request, persisted=False))
            raise

        await self.on_resource_created(request, persisted=True)
        return GuardedCreation(decision=decision, resource=resource, ambiguous=decision is None)

    async def on_resource_created(self, request: ResourceCreationRequest, *, persisted: bool = True) -> None:
        if persisted:
            logger.info("Created %s for tenant=%s", request.resource_type, request.tenant_id)
            return
        await self.compensate(request)

    async def on_resource_deleted(self, event: ResourceDeletionEvent) -> int:
        remaining = await self.gate.release(event.tenant_id, event.resource_type, event.amount)
        logger.info(
            "Deleted %s for tenant=%s; usage now %s",
            event.resource_type,
            event.tenant_id,
            remaining,
        )
        return remaining

    async def compensate(self, request: ResourceCreationRequest) -> int:
        delay = self.compensation_initial_delay_seconds
        for attempt in range(1, self.compensation_max_attempts + 1):
            try:
                remaining = await self.gate.release(request.tenant_id, request.resource_type, request.amount)
            except StorageUnavailable as exc:
                logger.warning(
                    "Compensating release attempt %s/%s failed tenant=%s resource=%s: %s",
                    attempt,
                    self.compensation_max_attempts,
                    request.tenant_id,
                    request.resource_type,
                    exc,
                )
                if attempt < self.compensation_max_attempts:
                    await self._sleep(delay)
                    delay = min(delay * 2, self.compensation_max_delay_seconds)
                continue
            logger.info(
                "Compensated %s reservation for tenant=%s; usage now %s",
                request.resource_type,
                request.tenant_id,
                remaining,
            )
            return remaining

        logger.error(
            "Counter drift: could not release %s reservation for tenant=%s",
            request.resource_type,
            request.tenant_id,
        )
        raise CompensationFailedError(request.tenant_id, request.resource_type, self.compensation_max_attempts)
