from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from tenant_quota.api.middleware import require_tenant_id
from tenant_quota.core.quota import (
    CompensationFailedError,
    ConfigurationError,
    QuotaError,
    QuotaGate,
    ResourceDeletionEvent,
    ResourceLifecycle,
    StorageUnavailable,
    TenantAccounts,
    TenantNotFoundError,
    UsageReport,
)
from tenant_quota.core.quota.dependencies import get_quota_gate, get_resource_lifecycle, get_tenant_accounts
from tenant_quota.schemas.quota import (
    AccountOpenRequest,
    QuotaDecisionResponse,
    ReleaseRequest,
    ReleaseResponse,
    ReservationRequest,
    ResourceUsageResponse,
    UsageResponse,
)

router = APIRouter(prefix="/quota", tags=["quota"])


def _http_error(exc: QuotaError) -> HTTPException:
    if isinstance(exc, (StorageUnavailable, CompensationFailedError)):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Quota store is unavailable, retry later",
        )
    if isinstance(exc, TenantNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tenant account not found")
    if isinstance(exc, ConfigurationError):
        return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Quota check failed")


def _usage_response(report: UsageReport) -> UsageResponse:
    return UsageResponse(
        tenant_id=report.tenant_id,
        tier=report.tier,
        display_name=report.display_name,
        resources={
            name: ResourceUsageResponse(
                current=usage.current,
                limit=usage.limit,
                unlimited=usage.unlimited,
                percentage=round(usage.percentage, 2),
                state=usage.state.value,
                reset_at=usage.reset_at,
            )
            for name, usage in report.resources.items()
        },
        features=report.features,
    )


@router.post("/accounts", response_model=UsageResponse, status_code=status.HTTP_201_CREATED)
async def open_account(
    payload: AccountOpenRequest,
    tenant_id: str = Depends(require_tenant_id),
    accounts: TenantAccounts = Depends(get_tenant_accounts),
    gate: QuotaGate = Depends(get_quota_gate),
) -> UsageResponse:
    try:
        await accounts.open_account(tenant_id, payload.tier, initial_users=payload.initial_users)
        report = await gate.usage(tenant_id)
    except QuotaError as exc:
        raise _http_error(exc) from exc
    return _usage_response(report)


@router.get("/usage", response_model=UsageResponse)
async def get_usage(
    tenant_id: str = Depends(require_tenant_id),
    gate: QuotaGate = Depends(get_quota_gate),
) -> UsageResponse:
    try:
        report = await gate.usage(tenant_id)
    except QuotaError as exc:
        raise _http_error(exc) from exc
    return _usage_response(report)


@router.post("/reservations", response_model=QuotaDecisionResponse)
async def reserve(
    payload: ReservationRequest,
    tenant_id: str = Depends(require_tenant_id),
    gate: QuotaGate = Depends(get_quota_gate),
) -> QuotaDecisionResponse:
    try:
        decision = await gate.check_and_reserve(tenant_id, payload.resource_type, payload.amount)
    except QuotaError as exc:
        raise _http_error(exc) from exc
    return QuotaDecisionResponse(
        allowed=decision.allowed,
        reason=decision.reason,
        current_usage=decision.current_usage,
        limit=decision.limit,
        suggested_tier=decision.suggested_tier,
    )


@router.post("/releases", response_model=ReleaseResponse)
async def release(
    payload: ReleaseRequest,
    tenant_id: str = Depends(require_tenant_id),
    lifecycle: ResourceLifecycle = Depends(get_resource_lifecycle),
) -> ReleaseResponse:
    event = ResourceDeletionEvent(tenant_id=tenant_id, resource_type=payload.resource_type, amount=payload.amount)
    try:
        remaining = await lifecycle.on_resource_deleted(event)
    except QuotaError as exc:
        raise _http_error(exc) from exc
    return ReleaseResponse(resource_type=payload.resource_type, current_usage=remaining)
