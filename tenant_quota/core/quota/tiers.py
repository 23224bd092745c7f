from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, replace
from functools import lru_cache
from typing import Literal

from tenant_quota.core.config import settings
from tenant_quota.core.quota.exceptions import ConfigurationError

SubscriptionTier = Literal["trial", "professional", "enterprise"]
ResourceType = Literal["project", "expense", "user"]

UNLIMITED = -1
NO_UPGRADE = "none"

# Lowest first; upgrade suggestions walk this order.
TIER_ORDER: tuple[SubscriptionTier, ...] = ("trial", "professional", "enterprise")

LIMIT_FIELDS = ("max_projects", "max_expenses_per_month", "max_users")


@dataclass(frozen=True, slots=True)
class TierLimits:
    tier: SubscriptionTier
    display_name: str
    max_projects: int
    max_expenses_per_month: int
    max_users: int
    features: frozenset[str] = frozenset()


@dataclass(frozen=True, slots=True)
class ResourcePolicy:
    resource_type: ResourceType
    counter: str
    limit_field: str
    reason: str
    windowed: bool = False


DEFAULT_TIER_LIMITS: dict[str, TierLimits] = {
    "trial": TierLimits(
        tier="trial",
        display_name="Trial",
        max_projects=3,
        max_expenses_per_month=50,
        max_users=1,
        features=frozenset({"dashboard", "pdf_export"}),
    ),
    "professional": TierLimits(
        tier="professional",
        display_name="Professional",
        max_projects=10,
        max_expenses_per_month=UNLIMITED,
        max_users=3,
        features=frozenset({"dashboard", "pdf_export", "advanced_pdf_export", "priority_support"}),
    ),
    "enterprise": TierLimits(
        tier="enterprise",
        display_name="Enterprise",
        max_projects=UNLIMITED,
        max_expenses_per_month=UNLIMITED,
        max_users=10,
        features=frozenset(
            {"dashboard", "pdf_export", "advanced_pdf_export", "priority_support", "auto_backups"}
        ),
    ),
}

RESOURCE_POLICIES: dict[str, ResourcePolicy] = {
    "project": ResourcePolicy(
        resource_type="project",
        counter="current_projects",
        limit_field="max_projects",
        reason="PROJECT_LIMIT_REACHED",
    ),
    "expense": ResourcePolicy(
        resource_type="expense",
        counter="current_month_expenses",
        limit_field="max_expenses_per_month",
        reason="EXPENSE_LIMIT_REACHED",
        windowed=True,
    ),
    "user": ResourcePolicy(
        resource_type="user",
        counter="current_users",
        limit_field="max_users",
        reason="USER_LIMIT_REACHED",
    ),
}


def is_unlimited(limit: int) -> bool:
    return limit == UNLIMITED


def normalize_tier(tier: str | None) -> str:
    return (tier or "").strip().lower()


def resource_policy(resource_type: str) -> ResourcePolicy:
    policy = RESOURCE_POLICIES.get((resource_type or "").strip().lower())
    if policy is None:
        raise ConfigurationError(f"Unknown resource type {resource_type!r}")
    return policy


def limit_for(limits: TierLimits, resource_type: str) -> int:
    return getattr(limits, resource_policy(resource_type).limit_field)


def _validate_limit(tier: str, field: str, value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"Limit {tier}.{field} must be an integer, got {value!r}")
    if value < UNLIMITED:
        raise ConfigurationError(f"Limit {tier}.{field} must be >= -1, got {value}")
    return value


class TierRegistry:
    """Static tier -> limits lookup.

    Unknown tiers are a configuration error. The registry never falls back to a
    default tier, because defaulting to either zero or unlimited silently
    changes the policy a tenant is billed for.
    """

    def __init__(self, tiers: Mapping[str, TierLimits] | None = None) -> None:
        self._tiers: dict[str, TierLimits] = dict(tiers if tiers is not None else DEFAULT_TIER_LIMITS)
        for name in TIER_ORDER:
            if name not in self._tiers:
                raise ConfigurationError(f"Tier {name!r} has no configured limits")

    @classmethod
    def with_overrides(cls, overrides: Mapping[str, Mapping[str, object]]) -> TierRegistry:
        tiers = dict(DEFAULT_TIER_LIMITS)
        for raw_tier, fields in overrides.items():
            tier = normalize_tier(raw_tier)
            if tier not in tiers:
                raise ConfigurationError(f"Override references unknown tier {raw_tier!r}")
            unknown = set(fields) - set(LIMIT_FIELDS)
            if unknown:
                raise ConfigurationError(
                    f"Override for tier {tier!r} has unknown fields: {', '.join(sorted(unknown))}"
                )
            changes = {field: _validate_limit(tier, field, value) for field, value in fields.items()}
            tiers[tier] = replace(tiers[tier], **changes)
        return cls(tiers)

    def get_limits(self, tier: str | None) -> TierLimits:
        limits = self._tiers.get(normalize_tier(tier))
        if limits is None:
            raise ConfigurationError(f"Unknown subscription tier {tier!r}")
        return limits

    def has_feature(self, tier: str | None, feature: str) -> bool:
        return feature in self.get_limits(tier).features

    def suggest_tier(
        self,
        current_tier: str | None,
        resource_type: str,
        current_usage: int,
        amount: int = 1,
    ) -> str:
        """Lowest tier above ``current_tier`` that would admit ``amount`` more units.

        Uses the same rule as the counter check, ``usage + amount <= limit``.
        """
        current = self.get_limits(current_tier).tier
        field = resource_policy(resource_type).limit_field
        for name in TIER_ORDER[TIER_ORDER.index(current) + 1 :]:
            limit = getattr(self._tiers[name], field)
            if is_unlimited(limit) or current_usage + amount <= limit:
                return name
        return NO_UPGRADE


@lru_cache(maxsize=1)
def get_tier_registry() -> TierRegistry:
    try:
        overrides = settings.tier_limit_overrides()
    except ValueError as exc:
        raise ConfigurationError(f"Invalid tier limit overrides: {exc}") from exc
    return TierRegistry.with_overrides(overrides)


def get_limits(tier: str | None) -> TierLimits:
    return get_tier_registry().get_limits(tier)
