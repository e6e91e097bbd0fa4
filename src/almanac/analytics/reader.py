"""
Read-only access to a user's aggregates for report and insight layers.

Missing documents and missing fields are normal ("insufficient data"):
every accessor returns an empty model or None instead of raising.
"""

from __future__ import annotations

from datetime import date, datetime

from almanac.core.storage import AggregateStore

from .models import CoverageAggregate, EntityActivity, HealthPeriod, PeriodStats
from .paths import AnalyticsPaths
from .periods import Cadence, period_key


class AnalyticsReader:
    """Typed views over the four aggregate documents."""

    def __init__(self, store: AggregateStore, paths: AnalyticsPaths | None = None):
        self.store = store
        self.paths = paths or AnalyticsPaths()

    async def coverage(self, user_id: str) -> CoverageAggregate:
        return CoverageAggregate.from_dict(await self.store.get(self.paths.coverage(user_id)))

    async def period_stats(self, user_id: str, key: str) -> PeriodStats | None:
        document = await self.store.get(self.paths.entry_stats(user_id)) or {}
        raw = (document.get("periods") or {}).get(key)
        return PeriodStats.from_dict(raw) if raw is not None else None

    async def stats_for(self, user_id: str, when: datetime | date, cadence: str | Cadence) -> PeriodStats | None:
        """Stats of the ``cadence`` period containing ``when``."""
        return await self.period_stats(user_id, period_key(when, cadence))

    async def entities(self, user_id: str, limit: int | None = None) -> list[tuple[str, EntityActivity]]:
        """Entities sorted by recency score, most recent first."""
        document = await self.store.get(self.paths.entity_activity(user_id)) or {}
        entities = [
            (entity_id, EntityActivity.from_dict(raw)) for entity_id, raw in (document.get("entities") or {}).items()
        ]
        entities.sort(key=lambda item: item[1].recency_score, reverse=True)
        return entities[:limit] if limit is not None else entities

    async def health_trends(self, user_id: str, key: str) -> HealthPeriod | None:
        document = await self.store.get(self.paths.health_trends(user_id)) or {}
        raw = (document.get("periods") or {}).get(key)
        return HealthPeriod.from_dict(raw) if raw is not None else None
