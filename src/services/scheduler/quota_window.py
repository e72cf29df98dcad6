"""
Rolling quota windows for a single sending account.

This module contains pure functions for:
- Hour and calendar-day window boundaries in the scheduling timezone
- Rolling the hourly/daily usage counters forward
- Finding the next instant at which one more action fits the quota

Timestamps are naive UTC datetimes, like everything persisted by the models.
Day boundaries are local midnights of the configured pytz timezone.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Tuple
import pytz

logger = logging.getLogger(__name__)

HOUR = timedelta(hours=1)


@dataclass(frozen=True)
class QuotaCeiling:
    per_hour: int
    per_day: int


@dataclass(frozen=True)
class QuotaWindow:
    """Usage counters plus the start of the hour and day they belong to."""
    hour_start: datetime
    day_start: datetime
    used_this_hour: int = 0
    used_this_day: int = 0

    def as_account_fields(self) -> dict:
        return {
            'actions_used_this_hour': self.used_this_hour,
            'actions_used_this_day': self.used_this_day,
            'rate_limit_hour_start': self.hour_start,
            'rate_limit_day_start': self.day_start
        }


def get_timezone(name: str):
    """Resolve a timezone name, falling back to UTC."""
    try:
        return pytz.timezone(name or 'UTC')
    except pytz.exceptions.UnknownTimeZoneError:
        logger.warning(f"Unknown schedule timezone '{name}', using UTC")
        return pytz.UTC


def _to_local(moment: datetime, tz) -> datetime:
    return pytz.UTC.localize(moment).astimezone(tz)


def _to_utc(local_moment: datetime) -> datetime:
    return local_moment.astimezone(pytz.UTC).replace(tzinfo=None)


def start_of_hour(moment: datetime, tz=pytz.UTC) -> datetime:
    local = _to_local(moment, tz)
    return _to_utc(local.replace(minute=0, second=0, microsecond=0))


def start_of_day(moment: datetime, tz=pytz.UTC) -> datetime:
    local = _to_local(moment, tz)
    return _to_utc(tz.localize(datetime(local.year, local.month, local.day)))


def next_day_start(moment: datetime, tz=pytz.UTC) -> datetime:
    """Local midnight following the day that contains ``moment``."""
    following = _to_local(moment, tz).date() + timedelta(days=1)
    return _to_utc(tz.localize(datetime(following.year, following.month, following.day)))


def roll_window(window: QuotaWindow, current_time: datetime, tz=pytz.UTC) -> QuotaWindow:
    """Advance the window so that it is the one containing ``current_time``."""
    hour_start = window.hour_start
    day_start = window.day_start
    used_this_hour = window.used_this_hour
    used_this_day = window.used_this_day

    if current_time >= hour_start + HOUR:
        hour_start = start_of_hour(current_time, tz)
        used_this_hour = 0

    if current_time >= next_day_start(day_start, tz):
        day_start = start_of_day(current_time, tz)
        used_this_day = 0
        used_this_hour = 0

    return QuotaWindow(
        hour_start=hour_start,
        day_start=day_start,
        used_this_hour=used_this_hour,
        used_this_day=used_this_day
    )


def next_legal_slot(
    window: QuotaWindow,
    ceiling: QuotaCeiling,
    current_time: datetime,
    tz=pytz.UTC
) -> Tuple[datetime, QuotaWindow]:
    """
    Find the earliest time at or after ``current_time`` where one more action fits.

    Args:
        window: Usage state before the action
        ceiling: Per-hour and per-day limits, both at least 1
        current_time: Candidate slot
        tz: Timezone whose midnights delimit the daily window

    Returns:
        Tuple of (slot time, window rolled to that slot)
    """
    if ceiling.per_hour < 1 or ceiling.per_day < 1:
        raise ValueError("Quota ceilings must allow at least one action")

    while True:
        window = roll_window(window, current_time, tz)
        if window.used_this_hour >= ceiling.per_hour:
            current_time = window.hour_start + HOUR
            continue
        if window.used_this_day >= ceiling.per_day:
            current_time = next_day_start(window.day_start, tz)
            continue
        return current_time, window


def record_usage(window: QuotaWindow, count: int = 1) -> QuotaWindow:
    return QuotaWindow(
        hour_start=window.hour_start,
        day_start=window.day_start,
        used_this_hour=window.used_this_hour + count,
        used_this_day=window.used_this_day + count
    )
