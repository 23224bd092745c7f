from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class ResourceCreationRequest:
    tenant_id: str
    resource_type: str
    amount: int = 1


@dataclass(frozen=True, slots=True)
class ResourceDeletionEvent:
    tenant_id: str
    resource_type: str
    amount: int = 1


@dataclass(frozen=True, slots=True)
class TierChangeEvent:
    tenant_id: str
    new_tier: str
