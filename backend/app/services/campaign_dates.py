from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Protocol
from zoneinfo import ZoneInfo

from app.core.config import settings


class HasEndAt(Protocol):
    end_at: datetime | None


@dataclass(frozen=True)
class CampaignWindow:
    start_at: datetime
    end_at: datetime


def _calendar(tz_name: str | None) -> ZoneInfo:
    return ZoneInfo(tz_name or settings.BILLING_TIMEZONE)


def add_calendar_days(start: datetime, days: int, *, tz_name: str | None = None) -> datetime:
    """Advance ``start`` by whole calendar days in the billing calendar.

    Aware arithmetic in a ZoneInfo zone keeps the local wall-clock time, so a day
    spanning a daylight-saving shift is 23 or 25 hours long. The result is UTC.
    """
    if start.tzinfo is None:
        start = start.replace(tzinfo=timezone.utc)
    local = start.astimezone(_calendar(tz_name))
    return (local + timedelta(days=days)).astimezone(timezone.utc)


def resolve_campaign_dates(
    days_purchased: int,
    current_campaign: HasEndAt | None,
    now: datetime,
    *,
    tz_name: str | None = None,
) -> CampaignWindow:
    """Start where the running campaign ends, or now when nothing is running."""
    start_at = now
    if current_campaign is not None and current_campaign.end_at is not None and current_campaign.end_at > now:
        start_at = current_campaign.end_at
    return CampaignWindow(
        start_at=start_at,
        end_at=add_calendar_days(start_at, days_purchased, tz_name=tz_name),
    )


def extend_expiration(current_expires_at: datetime | None, days: int, now: datetime, *, tz_name: str | None = None) -> datetime:
    """Membership counterpart: extend from max(now, current expiry)."""
    base = now
    if current_expires_at is not None and current_expires_at > now:
        base = current_expires_at
    return add_calendar_days(base, days, tz_name=tz_name)
