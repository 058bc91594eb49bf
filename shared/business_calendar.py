"""
Business Calendar - Single Source of Truth for opening days and hours.

The shop runs a fixed weekly template; there is no per-groomer schedule.
ALL code checking whether a date is open or where the opening window lies
MUST use these functions so the rules stay consistent.

Design Principles:
- Pure functions, no I/O
- Weekdays keyed 0=Sunday ... 6=Saturday
- Hour arithmetic happens in the business timezone (settings.TIMEZONE),
  results are converted to UTC for storage

Usage:
    from shared.business_calendar import is_business_day, get_business_hours

    if not is_business_day(date(2024, 1, 3)):  # Wednesday
        print("Closed")

    hours = get_business_hours(date(2024, 1, 1))  # Monday
    # BusinessHours(start_hour=11, end_hour=20)
"""

import logging
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from shared.config import get_settings

logger = logging.getLogger(__name__)

DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]


@dataclass(frozen=True)
class BusinessHours:
    """Opening window of a business day, in whole local hours."""

    start_hour: int
    end_hour: int


# 0=Sunday ... 6=Saturday. None = closed.
WEEKLY_SCHEDULE: dict[int, Optional[BusinessHours]] = {
    0: BusinessHours(start_hour=10, end_hour=19),  # Sunday
    1: BusinessHours(start_hour=11, end_hour=20),  # Monday
    2: BusinessHours(start_hour=11, end_hour=20),  # Tuesday
    3: None,                                       # Wednesday
    4: BusinessHours(start_hour=11, end_hour=20),  # Thursday
    5: BusinessHours(start_hour=11, end_hour=20),  # Friday
    6: BusinessHours(start_hour=10, end_hour=19),  # Saturday
}


def get_business_tz() -> ZoneInfo:
    """Return the configured business timezone."""
    return ZoneInfo(get_settings().TIMEZONE)


def to_business_date(target: date | datetime) -> date:
    """
    Normalize a date or datetime to a calendar date in the business timezone.

    Aware datetimes are converted to business-local time first, so an instant
    late on a UTC day can fall on the next local day. Naive datetimes are
    taken as already local.
    """
    if isinstance(target, datetime):
        if target.tzinfo is not None:
            target = target.astimezone(get_business_tz())
        return target.date()
    return target


def day_of_week(target: date | datetime) -> int:
    """
    Weekday index of a date, 0=Sunday ... 6=Saturday.

    Example:
        >>> day_of_week(date(2024, 1, 1))  # Monday
        1
    """
    return (to_business_date(target).weekday() + 1) % 7


def is_business_day(target: date | datetime) -> bool:
    """
    Check if the shop is open on a date.

    Example:
        >>> is_business_day(date(2024, 1, 3))  # Wednesday
        False
    """
    return WEEKLY_SCHEDULE[day_of_week(target)] is not None


def get_business_hours(target: date | datetime) -> Optional[BusinessHours]:
    """
    Get the opening window for a date.

    Returns:
        BusinessHours for open days, None when the shop is closed.
    """
    return WEEKLY_SCHEDULE[day_of_week(target)]


def local_datetime(target_date: date, hour: int, minute: int = 0) -> datetime:
    """Build a timezone-aware datetime at a wall-clock time in the business timezone."""
    return datetime.combine(target_date, time(hour, minute), tzinfo=get_business_tz())


def day_bounds_utc(target_date: date) -> tuple[datetime, datetime]:
    """
    Return [local midnight, next local midnight) of a business date, in UTC.

    Used to fetch every record that can touch a given calendar day.
    """
    start = datetime.combine(target_date, time.min, tzinfo=get_business_tz())
    end = start + timedelta(days=1)
    return start.astimezone(UTC), end.astimezone(UTC)


def business_window_utc(target_date: date) -> Optional[tuple[datetime, datetime]]:
    """Opening and closing instants of a business day in UTC, or None if closed."""
    hours = get_business_hours(target_date)
    if hours is None:
        return None
    opening = local_datetime(target_date, hours.start_hour).astimezone(UTC)
    closing = local_datetime(target_date, hours.end_hour).astimezone(UTC)
    return opening, closing


def is_within_business_hours(start_time: datetime, end_time: datetime) -> bool:
    """
    Check that an interval lies entirely inside one day's opening window.

    Args:
        start_time: Interval start (timezone-aware)
        end_time: Interval end (timezone-aware)

    Returns:
        False when the day is closed or the interval starts before opening or
        ends after closing.
    """
    local_date = to_business_date(start_time)
    window = business_window_utc(local_date)
    if window is None:
        logger.debug(f"{local_date} ({DAY_NAMES[day_of_week(local_date)]}) is closed")
        return False

    opening, closing = window
    return opening <= start_time and end_time <= closing
