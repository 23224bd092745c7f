from tenant_quota.api.routes.quota import router as quota_router
from tenant_quota.api.routes.webhooks import router as webhooks_router

__all__ = [
    "quota_router",
    "webhooks_router",
]
