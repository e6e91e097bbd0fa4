"""
Period calendar — canonical UTC period boundaries and keys.

A period key encodes a cadence and the period's start date, e.g.
``weekly-2026-02-16`` (ISO weeks start on Monday), ``monthly-2026-02-01``,
``quarterly-2026-04-01``, ``annual-2026-01-01``.  Naive datetimes are
treated as UTC; aware datetimes are converted to UTC first.
"""

from __future__ import annotations

from datetime import UTC, date, datetime, time, timedelta
from enum import StrEnum

from almanac.core.exceptions import InvalidCadence

_END_OF_DAY = time(23, 59, 59, 999000)


class Cadence(StrEnum):
    """Report/aggregation cadences."""

    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUAL = "annual"


def parse_cadence(cadence: str | Cadence) -> Cadence:
    """Coerce a string to a Cadence, raising InvalidCadence for unknown values."""
    try:
        return Cadence(cadence)
    except ValueError:
        raise InvalidCadence(cadence) from None


def to_utc(value: datetime | date) -> datetime:
    """Normalize a date or datetime to an aware UTC datetime."""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)
    return datetime.combine(value, time.min, tzinfo=UTC)


def _start_of(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=UTC)


def _end_of(day: date) -> datetime:
    return datetime.combine(day, _END_OF_DAY, tzinfo=UTC)


def _month_start(year: int, month: int) -> date:
    return date(year, month, 1)


def _next_month_start(year: int, month: int) -> date:
    return date(year + 1, 1, 1) if month == 12 else date(year, month + 1, 1)


def week_range(value: datetime | date) -> tuple[datetime, datetime]:
    """ISO week containing ``value``: Monday 00:00:00.000 to Sunday 23:59:59.999 UTC."""
    day = to_utc(value).date()
    monday = day - timedelta(days=day.weekday())
    return _start_of(monday), _end_of(monday + timedelta(days=6))


def month_range(value: datetime | date) -> tuple[datetime, datetime]:
    """Calendar month containing ``value`` in UTC."""
    day = to_utc(value).date()
    start = _month_start(day.year, day.month)
    end = _next_month_start(day.year, day.month) - timedelta(days=1)
    return _start_of(start), _end_of(end)


def quarter_range(value: datetime | date) -> tuple[datetime, datetime]:
    """Quarter (Jan/Apr/Jul/Oct blocks) containing ``value`` in UTC."""
    day = to_utc(value).date()
    first_month = 3 * ((day.month - 1) // 3) + 1
    start = _month_start(day.year, first_month)
    last_month = first_month + 2
    end = _next_month_start(day.year, last_month) - timedelta(days=1)
    return _start_of(start), _end_of(end)


def year_range(value: datetime | date) -> tuple[datetime, datetime]:
    """Calendar year containing ``value`` in UTC."""
    year = to_utc(value).year
    return _start_of(date(year, 1, 1)), _end_of(date(year, 12, 31))


_RANGES = {
    Cadence.WEEKLY: week_range,
    Cadence.MONTHLY: month_range,
    Cadence.QUARTERLY: quarter_range,
    Cadence.ANNUAL: year_range,
}


def period_range(value: datetime | date, cadence: str | Cadence) -> tuple[datetime, datetime]:
    """Inclusive ``[start, end]`` of the ``cadence`` period containing ``value``."""
    return _RANGES[parse_cadence(cadence)](value)


def period_key(value: datetime | date, cadence: str | Cadence) -> str:
    """Canonical key for the ``cadence`` period containing ``value``."""
    cadence = parse_cadence(cadence)
    start, _ = _RANGES[cadence](value)
    return f"{cadence.value}-{start.date().isoformat()}"


def period_keys(value: datetime | date) -> dict[Cadence, str]:
    """Period keys for ``value`` across all four cadences."""
    return {cadence: period_key(value, cadence) for cadence in Cadence}


def previous_period_start(value: datetime | date, cadence: str | Cadence) -> datetime:
    """Start of the period immediately preceding the one containing ``value``."""
    start, _ = period_range(value, cadence)
    return period_range(start - timedelta(days=1), cadence)[0]


def previous_period_key(value: datetime | date, cadence: str | Cadence) -> str:
    """Key of the period immediately preceding the one containing ``value``."""
    return period_key(previous_period_start(value, cadence), cadence)


def parse_period_key(key: str) -> tuple[Cadence, date]:
    """Split a period key back into ``(cadence, start date)``.

    Raises:
        InvalidCadence: If the cadence prefix is unknown.
        ValueError: If the date part is malformed.
    """
    cadence, _, start = key.partition("-")
    return parse_cadence(cadence), date.fromisoformat(start)
