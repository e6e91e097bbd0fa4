"""
Behavioral analytics over analyzed journal entries.

Pure building blocks (period calendar, recency decay, domain
classification, statistics), typed aggregate models, the incremental
updater that applies each new entry, and the reconciliation job that
periodically restores correctness.
"""

from .decay import days_between, recency_weight
from .domains import LIFE_DOMAINS, LifeDomain, domains_for_tags, map_tag_to_domain
from .models import (
    CoverageAggregate,
    DomainCoverage,
    EntityActivity,
    EntityMention,
    EntryRecord,
    HealthContext,
    HealthPeriod,
    MetricSummary,
    MoodCorrelation,
    PeriodStats,
    RollupResult,
    Tag,
    UpdateResult,
    UserRollupResult,
)
from .paths import AnalyticsPaths
from .periods import (
    Cadence,
    month_range,
    period_key,
    period_keys,
    period_range,
    previous_period_key,
    quarter_range,
    week_range,
    year_range,
)
from .reader import AnalyticsReader
from .rollup import ReconciliationJob
from .stats import Trend, aggregate, classify_trend, pearson_correlation
from .updater import IncrementalUpdater

__all__ = [
    "LIFE_DOMAINS",
    "AnalyticsPaths",
    "AnalyticsReader",
    "Cadence",
    "CoverageAggregate",
    "DomainCoverage",
    "EntityActivity",
    "EntityMention",
    "EntryRecord",
    "HealthContext",
    "HealthPeriod",
    "IncrementalUpdater",
    "LifeDomain",
    "MetricSummary",
    "MoodCorrelation",
    "PeriodStats",
    "ReconciliationJob",
    "RollupResult",
    "Tag",
    "Trend",
    "UpdateResult",
    "UserRollupResult",
    "aggregate",
    "classify_trend",
    "days_between",
    "domains_for_tags",
    "map_tag_to_domain",
    "month_range",
    "pearson_correlation",
    "period_key",
    "period_keys",
    "period_range",
    "previous_period_key",
    "quarter_range",
    "recency_weight",
    "week_range",
    "year_range",
]
