from tenant_quota.models.base import Base, TimestampedBase
from tenant_quota.models.tenant_account import TenantAccount

__all__ = [
    "Base",
    "TimestampedBase",
    "TenantAccount",
]
