"""Small statistical helpers: summaries, Pearson correlation, trend labels."""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass
from enum import StrEnum

MIN_CORRELATION_SAMPLES = 3
DEFAULT_TREND_THRESHOLD = 0.05


class Trend(StrEnum):
    IMPROVING = "improving"
    DECLINING = "declining"
    STABLE = "stable"


@dataclass(frozen=True)
class Summary:
    """Mean/min/max of a series (all zero for an empty series)."""

    mean: float
    min: float
    max: float


def mean(values: Sequence[float]) -> float:
    return math.fsum(values) / len(values) if values else 0.0


def aggregate(values: Sequence[float]) -> Summary:
    """Summarize a series; empty input yields ``Summary(0, 0, 0)``."""
    if not values:
        return Summary(0.0, 0.0, 0.0)
    return Summary(mean(values), min(values), max(values))


def pearson_correlation(
    xs: Sequence[float],
    ys: Sequence[float],
    min_samples: int = MIN_CORRELATION_SAMPLES,
) -> float | None:
    """Product-moment correlation of two equal-length series.

    Returns None with fewer than ``min_samples`` pairs or when either
    series has no variation.  The result is clamped to ``[-1, 1]`` to
    absorb floating point overshoot.
    """
    if len(xs) != len(ys):
        raise ValueError(f"Series lengths differ: {len(xs)} != {len(ys)}")
    n = len(xs)
    if n < min_samples:
        return None

    mean_x = mean(xs)
    mean_y = mean(ys)
    dx = [x - mean_x for x in xs]
    dy = [y - mean_y for y in ys]

    numerator = math.fsum(a * b for a, b in zip(dx, dy))
    denominator = math.sqrt(math.fsum(a * a for a in dx) * math.fsum(b * b for b in dy))
    if denominator == 0:
        return None
    return max(-1.0, min(1.0, numerator / denominator))


def classify_trend(current: float, previous: float, threshold_ratio: float = DEFAULT_TREND_THRESHOLD) -> Trend:
    """Label the change from ``previous`` to ``current``.

    The band is ``|previous| * threshold_ratio``; with ``previous == 0`` it
    collapses to 0, so any rise is improving and any drop is declining.
    """
    diff = current - previous
    threshold = abs(previous) * threshold_ratio
    if diff > threshold:
        return Trend.IMPROVING
    if diff < -threshold:
        return Trend.DECLINING
    return Trend.STABLE
