"""
Timezone utilities for the scheduling core.

Wall-clock strings ("HH:MM") live in the teacher's timezone; everything
persisted is an absolute UTC instant. Conversions go through pytz so that
each occurrence is localized on its own date and DST shifts keep the
local time stable.
"""

from datetime import date, datetime, time, timedelta
from typing import Callable, Iterator, Optional

import pytz

from .constants import TIME_FORMAT
from .exceptions import ValidationException

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Current instant as an aware UTC datetime."""
    return datetime.now(pytz.UTC)


def get_timezone(name: str) -> pytz.BaseTzInfo:
    """
    Resolve an IANA timezone name.

    Raises:
        ValidationException: If the name is unknown
    """
    try:
        return pytz.timezone(name)
    except pytz.UnknownTimeZoneError:
        raise ValidationException(f"Unknown timezone: {name}", details={"timezone": name})


def parse_wall_clock(value: str) -> time:
    """Parse an ``HH:MM`` string into a time."""
    try:
        return datetime.strptime(value, TIME_FORMAT).time()
    except (TypeError, ValueError):
        raise ValidationException(
            "Invalid time format. Use HH:MM format (e.g., 09:00)",
            details={"value": value},
        )


def format_wall_clock(value: time) -> str:
    return value.strftime(TIME_FORMAT)


def localize(naive: datetime, tz: pytz.BaseTzInfo) -> datetime:
    """
    Attach ``tz`` to a naive wall-clock datetime.

    Non-existent local times (spring-forward gap) are shifted forward by
    pytz's normalize; ambiguous ones resolve to standard time.
    """
    return tz.normalize(tz.localize(naive, is_dst=False))


def localize_existing(naive: datetime, tz: pytz.BaseTzInfo) -> Optional[datetime]:
    """
    Like ``localize`` but returns None for wall-clock times skipped by a
    spring-forward transition instead of shifting them.
    """
    try:
        return tz.localize(naive, is_dst=None)
    except pytz.NonExistentTimeError:
        return None
    except pytz.AmbiguousTimeError:
        return tz.localize(naive, is_dst=False)


def wall_clock_to_utc(day: date, wall_clock: time, tz: pytz.BaseTzInfo) -> datetime:
    """Combine a local date and time in ``tz`` and return the UTC instant."""
    return localize(datetime.combine(day, wall_clock), tz).astimezone(pytz.UTC)


def ensure_utc(value: datetime, tz_name: str = "UTC") -> datetime:
    """
    Return ``value`` as an aware UTC datetime.

    Naive values are interpreted as wall-clock time in ``tz_name``.
    """
    if value.tzinfo is None:
        value = localize(value, get_timezone(tz_name))
    return value.astimezone(pytz.UTC)


def to_timezone(value: datetime, tz_name: str) -> datetime:
    return ensure_utc(value).astimezone(get_timezone(tz_name))


def day_of_week(day: date) -> int:
    """Sunday-first day index (0 = Sunday ... 6 = Saturday)."""
    return (day.weekday() + 1) % 7


def iter_dates(start: date, end: date) -> Iterator[date]:
    """Yield every calendar date from ``start`` to ``end`` inclusive."""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def local_day_bounds(start: date, end: date, tz: pytz.BaseTzInfo) -> tuple[datetime, datetime]:
    """UTC instants covering local midnight of ``start`` to local midnight after ``end``."""
    return (
        wall_clock_to_utc(start, time(0, 0), tz),
        wall_clock_to_utc(end + timedelta(days=1), time(0, 0), tz),
    )
