from __future__ import annotations

from pydantic import BaseModel, Field


class TierChangeRequest(BaseModel):
    tenant_id: str = Field(min_length=1, max_length=255)
    new_tier: str = Field(min_length=1, max_length=50)


class TierChangeResponse(BaseModel):
    received: bool
    tenant_id: str
    tier: str | None = None
    updated: bool
