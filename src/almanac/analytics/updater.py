"""
Incremental updater — applies one analyzed entry to a user's aggregates.

Delivery is at-least-once, so the whole update is gated on an idempotency
check inside the coverage transaction: the entry id is looked up in the
coverage document's ``processed_entry_ids`` and recorded there in the same
atomic commit that adds the entry's domain weight.  Replays abort that
transaction with :class:`AlreadyProcessed` and touch nothing else.

After the gate commits, entry statistics and entity activity are updated
with commutative field transforms outside any transaction.  A failure
there is logged and leaves the coverage update in place; entry statistics
are repaired by the next reconciliation pass, entity mentions are not.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from loguru import logger

from almanac.core.config_schema import AnalyticsSettings
from almanac.core.exceptions import AlreadyProcessed
from almanac.core.storage import AggregateStore, Increment, Maximum, Minimum, Transaction

from .decay import days_between, recency_weight
from .domains import domains_for_tags
from .models import COMPLETE, CoverageAggregate, EntryRecord, UpdateResult
from .paths import AnalyticsPaths
from .periods import period_keys

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(UTC)


class IncrementalUpdater:
    """Updates coverage, entry stats and entity activity for new entries.

    Args:
        store: Aggregate store holding the user documents.
        settings: Half-life, ID caps and other tunables.
        paths: Document path layout.
        clock: Returns the current time; injected for tests.
    """

    def __init__(
        self,
        store: AggregateStore,
        settings: AnalyticsSettings | None = None,
        paths: AnalyticsPaths | None = None,
        clock: Clock = utcnow,
    ):
        self.store = store
        self.settings = settings or AnalyticsSettings()
        self.paths = paths or AnalyticsPaths()
        self._clock = clock

    async def handle_entry_change(
        self,
        user_id: str,
        entry_id: str,
        before: dict[str, Any] | None,
        after: dict[str, Any] | None,
    ) -> UpdateResult | None:
        """Trigger entry point for entry document updates.

        Only the transition of ``analysis_status`` to ``complete`` is
        processed; every other change returns None.
        """
        if not after or after.get("analysis_status") != COMPLETE:
            return None
        if before and before.get("analysis_status") == COMPLETE:
            return None
        entry = EntryRecord.from_document(entry_id, user_id, after, now=self._clock())
        return await self.process_entry(entry)

    async def process_entry(self, entry: EntryRecord) -> UpdateResult:
        """Apply one analyzed entry to the user's aggregates, at most once."""
        now = self._clock()
        days_ago = days_between(entry.created_at, now)
        weight = recency_weight(days_ago, self.settings.half_life_days)
        domains = domains_for_tags(entry.tags)

        try:
            await self._apply_coverage(entry, domains, weight, now)
        except AlreadyProcessed:
            logger.debug(f"Entry {entry.id} already processed, skipping")
            return UpdateResult(entry_id=entry.id, already_processed=True)

        logger.info(f"Processing analytics for entry {entry.id} (user {entry.user_id})")

        try:
            await self._increment_entry_stats(entry, now)
        except Exception as e:
            logger.error(f"Entry stats update failed for entry {entry.id} (user {entry.user_id}): {e}")

        entity_count = 0
        try:
            entity_count = await self._upsert_entities(entry, weight, now)
        except Exception as e:
            logger.warning(
                f"Entity activity update failed for entry {entry.id} (user {entry.user_id}); "
                f"{len(entry.entities)} mention(s) lost: {e}"
            )

        logger.info(f"Analytics updated for entry {entry.id}: {len(domains)} domains, {entity_count} entities")
        return UpdateResult(entry_id=entry.id, domains=domains, entity_count=entity_count)

    async def _apply_coverage(self, entry: EntryRecord, domains: list[str], weight: float, now: datetime) -> None:
        """Idempotency gate and coverage update in one transaction."""
        path = self.paths.coverage(entry.user_id)
        cap = self.settings.max_tracked_ids

        async def body(txn: Transaction) -> None:
            coverage = CoverageAggregate.from_dict(await txn.get(path))
            if coverage.is_processed(entry.id):
                raise AlreadyProcessed(entry.id)
            # Existing weights are brought current before the new weight joins them.
            if coverage.decayed_through is not None:
                elapsed = days_between(coverage.decayed_through, now)
                coverage.decay(recency_weight(elapsed, self.settings.half_life_days))
            coverage.apply_entry(entry.id, domains, weight, cap)
            coverage.last_updated = now
            coverage.last_decayed = now
            txn.set(path, coverage.to_dict())

        await self.store.transaction(body)

    async def _increment_entry_stats(self, entry: EntryRecord, now: datetime) -> None:
        period: dict[str, Any] = {
            "entry_count": Increment(1),
            "category_breakdown": {entry.category: Increment(1)},
            "entry_type_distribution": {entry.entry_type: Increment(1)},
        }
        if entry.mood_score is not None:
            period["mood_sum"] = Increment(entry.mood_score)
            period["mood_count"] = Increment(1)
            period["mood_min"] = Minimum(entry.mood_score)
            period["mood_max"] = Maximum(entry.mood_score)

        keys = period_keys(entry.created_at)
        await self.store.merge(
            self.paths.entry_stats(entry.user_id),
            {"periods": {key: period for key in keys.values()}, "last_updated": now},
        )

    async def _upsert_entities(self, entry: EntryRecord, weight: float, now: datetime) -> int:
        updates: dict[str, Any] = {}
        for mention in entry.entities:
            entity_id = mention.activity_id
            if not entity_id:
                continue
            updates[entity_id] = {
                "name": None if mention.name is None else str(mention.name),
                "category": mention.activity_category,
                "mention_count": Increment(1),
                "last_mention_date": now,
                "recency_score": weight,
            }
        if not updates:
            return 0
        await self.store.merge(
            self.paths.entity_activity(entry.user_id),
            {"entities": updates, "last_updated": now},
        )
        return len(updates)
