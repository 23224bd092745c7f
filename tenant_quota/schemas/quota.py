from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

ResourceTypeField = Literal["project", "expense", "user"]


class AccountOpenRequest(BaseModel):
    tier: str = Field(default="trial", min_length=1, max_length=50)
    initial_users: int = Field(default=0, ge=0)


class ReservationRequest(BaseModel):
    resource_type: ResourceTypeField
    amount: int = Field(default=1, ge=1, le=1000)


class ReleaseRequest(BaseModel):
    resource_type: ResourceTypeField
    amount: int = Field(default=1, ge=1, le=1000)


class QuotaDecisionResponse(BaseModel):
    allowed: bool
    reason: str | None = None
    current_usage: int
    limit: int
    suggested_tier: str | None = None


class ReleaseResponse(BaseModel):
    resource_type: str
    current_usage: int


class ResourceUsageResponse(BaseModel):
    current: int
    limit: int
    unlimited: bool
    percentage: float
    state: str
    reset_at: datetime | None = None


class UsageResponse(BaseModel):
    tenant_id: str
    tier: str
    display_name: str
    resources: dict[str, ResourceUsageResponse]
    features: list[str]
