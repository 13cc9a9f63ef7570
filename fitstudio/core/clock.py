"""
Injectable time source.

Every lifecycle decision (term finished or scheduled, retention cutoff, next
week's Monday) is taken against `Clock.now()` instead of calling
`datetime.now()` inline, so tests can pin time with a frozen clock.
"""

from datetime import date, datetime, timedelta, timezone
from functools import lru_cache
from zoneinfo import ZoneInfo

from fitstudio.core.config import get_settings


class Clock:
    """Wall clock returning timezone-aware UTC timestamps."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


_clock = Clock()


def get_clock() -> Clock:
    """FastAPI dependency; overridden in tests."""
    return _clock


@lru_cache()
def studio_tz() -> ZoneInfo:
    return ZoneInfo(get_settings().STUDIO_TIMEZONE)


def ensure_utc(value: datetime) -> datetime:
    """Normalize a timestamp to aware UTC. Naive input is taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def local_date(moment: datetime) -> date:
    """Calendar date of `moment` in the studio's timezone."""
    return ensure_utc(moment).astimezone(studio_tz()).date()


def monday_of(day: date) -> date:
    return day - timedelta(days=day.weekday())


def week_bounds(moment: datetime) -> tuple[datetime, datetime]:
    """
    Half-open [start, end) UTC bounds of the Monday-start calendar week
    containing `moment`, evaluated in the studio's timezone.
    """
    tz = studio_tz()
    monday = monday_of(local_date(moment))
    start = datetime.combine(monday, datetime.min.time(), tzinfo=tz)
    end = datetime.combine(monday + timedelta(days=7), datetime.min.time(), tzinfo=tz)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def next_week_monday(reference: date) -> date:
    """Monday of the calendar week following the one containing `reference`."""
    return monday_of(reference) + timedelta(days=7)
