from tenant_quota.schemas.billing import TierChangeRequest, TierChangeResponse
from tenant_quota.schemas.quota import (
    AccountOpenRequest,
    QuotaDecisionResponse,
    ReleaseRequest,
    ReleaseResponse,
    ReservationRequest,
    ResourceUsageResponse,
    UsageResponse,
)

__all__ = [
    "AccountOpenRequest",
    "ReservationRequest",
    "ReleaseRequest",
    "QuotaDecisionResponse",
    "ReleaseResponse",
    "ResourceUsageResponse",
    "UsageResponse",
    "TierChangeRequest",
    "TierChangeResponse",
]
