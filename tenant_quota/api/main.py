import logging

from fastapi import FastAPI

from tenant_quota.api.middleware import tenant_context_middleware
from tenant_quota.api.routes.quota import router as quota_router
from tenant_quota.api.routes.webhooks import router as webhooks_router
from tenant_quota.core.config import settings
from tenant_quota.core.quota.dependencies import close_counter_store

app = FastAPI(title="Tenant Quota Service")
app.middleware("http")(tenant_context_middleware)
app.include_router(quota_router, prefix="/api/v1")
app.include_router(webhooks_router, prefix="/api/v1")


@app.on_event("startup")
async def startup_event() -> None:
    logging.basicConfig(level=settings.log_level.upper())


@app.on_event("shutdown")
async def shutdown_event() -> None:
    await close_counter_store()


@app.get("/health", tags=["system"])
async def health_check() -> dict[str, str]:
    return {"status": "ok"}
