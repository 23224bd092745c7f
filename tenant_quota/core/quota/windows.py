from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from tenant_quota.core.quota.exceptions import ConfigurationError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True, slots=True)
class WindowState:
    usage: int
    reset_at: datetime
    reset: bool


class MonthlyWindow:
    """Calendar-month rolling window for the expenses-per-month counter.

    The reset itself is applied inside the counter store's atomic mutation;
    this class only computes the boundaries and the read-side view.
    """

    def __init__(self, reference_timezone: str = "UTC") -> None:
        try:
            self.tz = ZoneInfo(reference_timezone)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ConfigurationError(f"Unknown reference timezone {reference_timezone!r}") from exc

    def next_reset(self, now: datetime) -> datetime:
        local = as_utc(now).astimezone(self.tz)
        if local.month == 12:
            boundary = datetime(local.year + 1, 1, 1, tzinfo=self.tz)
        else:
            boundary = datetime(local.year, local.month + 1, 1, tzinfo=self.tz)
        return boundary.astimezone(timezone.utc)

    def is_due(self, reset_at: datetime, now: datetime) -> bool:
        return as_utc(now) >= as_utc(reset_at)

    def ensure_current_window(self, usage: int, reset_at: datetime, now: datetime) -> WindowState:
        if self.is_due(reset_at, now):
            return WindowState(usage=0, reset_at=self.next_reset(now), reset=True)
        return WindowState(usage=usage, reset_at=as_utc(reset_at), reset=False)
