"""Exponential recency weighting."""

from __future__ import annotations

from datetime import date, datetime

from .periods import to_utc

DEFAULT_HALF_LIFE_DAYS = 14.0
SECONDS_PER_DAY = 86400.0


def recency_weight(days_ago: float, half_life_days: float = DEFAULT_HALF_LIFE_DAYS) -> float:
    """Weight of evidence ``days_ago`` old: ``0.5 ** (days_ago / half_life_days)``.

    1.0 today, 0.5 after one half-life, approaching 0 as evidence ages.
    Callers clamp future timestamps via :func:`days_between`.
    """
    if half_life_days <= 0:
        raise ValueError(f"half_life_days must be positive, got {half_life_days}")
    return 0.5 ** (days_ago / half_life_days)


def days_between(earlier: datetime | date, later: datetime | date) -> float:
    """Fractional days from ``earlier`` to ``later``, never negative."""
    delta = to_utc(later) - to_utc(earlier)
    return max(0.0, delta.total_seconds() / SECONDS_PER_DAY)


def hours_between(earlier: datetime | date, later: datetime | date) -> float:
    """Fractional hours from ``earlier`` to ``later``, never negative."""
    return days_between(earlier, later) * 24.0
