from __future__ import annotations


class QuotaError(RuntimeError):
    pass


class ConfigurationError(QuotaError):
    """Raised for an unknown tier, resource type or counter, or a malformed limit table."""


class StorageUnavailable(QuotaError):
    """The counter store could not be reached. Admission must fail closed."""


class TenantNotFoundError(QuotaError):
    def __init__(self, tenant_id: str) -> None:
        super().__init__(f"Tenant account {tenant_id!r} does not exist")
        self.tenant_id = tenant_id


class CompensationFailedError(QuotaError):
    def __init__(self, tenant_id: str, resource_type: str, attempts: int) -> None:
        super().__init__(
            f"Compensating release for tenant={tenant_id} resource={resource_type} "
            f"failed after {attempts} attempts"
        )
        self.tenant_id = tenant_id
        self.resource_type = resource_type
        self.attempts = attempts
