from __future__ import annotations

import re
from collections.abc import Awaitable, Callable

from fastapi import HTTPException, Request
from starlette import status
from starlette.responses import JSONResponse, Response

from tenant_quota.core.context import get_current_tenant_id, reset_current_tenant_id, set_current_tenant_id

_TENANT_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._:-]{0,254}$")


async def tenant_context_middleware(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    tenant_id = request.headers.get("X-Tenant-Id")
    if tenant_id is not None:
        tenant_id = tenant_id.strip()
        if not _TENANT_ID_PATTERN.match(tenant_id):
            return JSONResponse(
                status_code=status.HTTP_400_BAD_REQUEST,
                content={"detail": "Invalid X-Tenant-Id header"},
            )

    token = set_current_tenant_id(tenant_id)
    try:
        return await call_next(request)
    finally:
        reset_current_tenant_id(token)


async def require_tenant_id() -> str:
    tenant_id = get_current_tenant_id()
    if not tenant_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Tenant-Id header is required",
        )
    return tenant_id
