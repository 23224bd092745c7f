from tenant_quota.core.repositories.tenant_accounts import TenantAccountRepository

__all__ = [
    "TenantAccountRepository",
]
