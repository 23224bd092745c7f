from tenant_quota.core.quota.accounts import TenantAccounts
from tenant_quota.core.quota.events import ResourceCreationRequest, ResourceDeletionEvent, TierChangeEvent
from tenant_quota.core.quota.exceptions import (
    CompensationFailedError,
    ConfigurationError,
    QuotaError,
    StorageUnavailable,
    TenantNotFoundError,
)
from tenant_quota.core.quota.gate import CounterState, QuotaDecision, QuotaGate, ResourceUsage, UsageReport
from tenant_quota.core.quota.lifecycle import GuardedCreation, ResourceLifecycle
from tenant_quota.core.quota.store import AccountSnapshot, CounterStore, IncrementResult
from tenant_quota.core.quota.tiers import TierLimits, TierRegistry, get_limits
from tenant_quota.core.quota.windows import MonthlyWindow

__all__ = [
    "AccountSnapshot",
    "CompensationFailedError",
    "ConfigurationError",
    "CounterState",
    "CounterStore",
    "GuardedCreation",
    "IncrementResult",
    "MonthlyWindow",
    "QuotaDecision",
    "QuotaError",
    "QuotaGate",
    "ResourceCreationRequest",
    "ResourceDeletionEvent",
    "ResourceLifecycle",
    "ResourceUsage",
    "StorageUnavailable",
    "TenantAccounts",
    "TenantNotFoundError",
    "TierChangeEvent",
    "TierLimits",
    "TierRegistry",
    "UsageReport",
    "get_limits",
]
