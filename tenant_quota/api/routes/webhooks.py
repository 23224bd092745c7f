from __future__ import annotations

import hmac
import logging

from fastapi import APIRouter, Depends, Header, HTTPException, status

from tenant_quota.core.config import settings
from tenant_quota.core.quota import (
    ConfigurationError,
    StorageUnavailable,
    TenantAccounts,
    TenantNotFoundError,
    TierChangeEvent,
)
from tenant_quota.core.quota.dependencies import get_tenant_accounts
from tenant_quota.schemas.billing import TierChangeRequest, TierChangeResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


def _verify_secret(provided: str | None) -> None:
    expected = settings.tier_webhook_secret
    if not expected:
        return
    if not provided or not hmac.compare_digest(provided, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid billing webhook secret",
        )


@router.post("/tier-change", response_model=TierChangeResponse)
async def tier_change_webhook(
    payload: TierChangeRequest,
    accounts: TenantAccounts = Depends(get_tenant_accounts),
    webhook_secret: str | None = Header(default=None, alias="X-Billing-Webhook-Secret"),
) -> TierChangeResponse:
    _verify_secret(webhook_secret)

    event = TierChangeEvent(tenant_id=payload.tenant_id, new_tier=payload.new_tier)
    try:
        account = await accounts.apply_tier_change(event)
    except TenantNotFoundError:
        logger.warning("Tier change for unknown tenant=%s ignored", payload.tenant_id)
        return TierChangeResponse(received=True, tenant_id=payload.tenant_id, tier=None, updated=False)
    except ConfigurationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    except StorageUnavailable as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Quota store is unavailable, retry later",
        ) from exc

    return TierChangeResponse(received=True, tenant_id=account.tenant_id, tier=account.tier, updated=True)
