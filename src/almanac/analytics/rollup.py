"""
Periodic reconciliation and decay of per-user aggregates.

The sweep visits every user whose coverage document took in an entry within the
activity look-back window and, for each one:

1. recomputes the current week's entry statistics from source entries and
   overwrites the stored record when it has drifted;
2. regenerates the current week's health trends (metric summaries, mood
   correlations, week-over-week trend labels);
3. decays coverage weights by the time elapsed since they were last decayed;
4. refreshes entity recency scores;
5. prunes entities not mentioned within the staleness window;
6. trims the processed-entry ledger to its cap.

Users are processed with bounded parallelism, each inside its own error
boundary and timeout; one failing user never stops the sweep.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta

from loguru import logger

from almanac.core.config_schema import AnalyticsSettings
from almanac.core.exceptions import UpstreamReadFailure
from almanac.core.storage import AggregateStore, Replace, Transaction

from .decay import days_between, hours_between, recency_weight
from .models import (
    CoverageAggregate,
    EntityActivity,
    EntryRecord,
    HealthPeriod,
    MetricSummary,
    MoodCorrelation,
    PeriodStats,
    RollupResult,
    UserRollupResult,
)
from .paths import AnalyticsPaths
from .periods import Cadence, period_key, previous_period_key, week_range
from .stats import aggregate, classify_trend, pearson_correlation
from .updater import Clock, utcnow


class ReconciliationJob:
    """Scheduled sweep restoring correctness of incrementally maintained aggregates.

    Args:
        store: Aggregate store holding user documents and source entries.
        settings: Tunables (half-life, staleness window, timeouts, ...).
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

    # ── Sweep ──────────────────────────────────────────────────────

    async def run(self) -> RollupResult:
        """Reconcile every recently active user."""
        now = self._clock()
        cutoff = now - timedelta(hours=self.settings.activity_lookback_hours)
        user_ids = await self.store.list_ids(self.paths.users)
        semaphore = asyncio.Semaphore(self.settings.max_concurrent_users)

        async def guarded(user_id: str) -> tuple[str, UserRollupResult | None]:
            async with semaphore:
                return await self._run_user(user_id, now, cutoff)

        outcomes = await asyncio.gather(*(guarded(user_id) for user_id in user_ids))

        result = RollupResult()
        for user_id, (status, user_result) in zip(user_ids, outcomes):
            if status == "processed":
                result.users_processed += 1
                result.results.append(user_result)
            elif status == "skipped":
                result.users_skipped += 1
            else:
                result.users_failed.append(user_id)

        logger.info(
            f"Periodic rollup complete: {result.users_processed} processed, "
            f"{result.users_skipped} skipped, {len(result.users_failed)} failed"
        )
        return result

    async def _run_user(self, user_id: str, now: datetime, cutoff: datetime) -> tuple[str, UserRollupResult | None]:
        try:
            if not await self.is_active(user_id, cutoff):
                return "skipped", None
            user_result = await asyncio.wait_for(
                self.process_user(user_id, now),
                timeout=self.settings.user_timeout_seconds,
            )
            return "processed", user_result
        except TimeoutError:
            logger.error(f"Rollup for user {user_id} timed out after {self.settings.user_timeout_seconds}s")
        except Exception as e:
            logger.error(f"Error processing rollup for user {user_id}: {e!r}")
        return "failed", None

    async def is_active(self, user_id: str, cutoff: datetime) -> bool:
        """True if the user has a coverage document that took in an entry at or after ``cutoff``.

        Decay writes ``last_decayed`` only, so an idle user drops out once the window passes.
        """
        document = await self.store.get(self.paths.coverage(user_id))
        if document is None:
            return False
        last_updated = CoverageAggregate.from_dict(document).last_updated
        return last_updated is None or last_updated >= cutoff

    async def process_user(self, user_id: str, now: datetime | None = None) -> UserRollupResult:
        """Run all reconciliation steps for one user."""
        now = now or self._clock()
        result = UserRollupResult(user_id=user_id)

        entries = await self.read_week_entries(user_id, now)
        result.stats_reconciled = await self.reconcile_entry_stats(user_id, now, entries)
        result.health_trends_written = await self.compute_health_trends(user_id, now, entries) is not None
        result.coverage_decayed = await self.decay_coverage(user_id, now)
        result.entities_refreshed = await self.refresh_entity_recency(user_id, now)
        result.entities_pruned = await self.prune_stale_entities(user_id, now)
        result.ids_trimmed = await self.trim_processed_ids(user_id)
        return result

    # ── Source entries ─────────────────────────────────────────────

    async def read_week_entries(self, user_id: str, now: datetime) -> list[EntryRecord]:
        """Source entries created during the UTC week containing ``now``."""
        week_start, _ = week_range(now)
        week_end = week_start + timedelta(days=7)
        try:
            documents = await self.store.query(
                self.paths.entries(user_id),
                filters=[("created_at", ">=", week_start), ("created_at", "<", week_end)],
                order_by="created_at",
            )
        except Exception as e:
            raise UpstreamReadFailure(f"Cannot read entries for user {user_id}: {e}") from e

        entries = []
        for document in documents:
            entry_id = document.pop("_id")
            try:
                entries.append(EntryRecord.from_document(entry_id, user_id, document, now=now))
            except ValueError as e:
                logger.warning(f"Skipping malformed entry {entry_id} (user {user_id}): {e}")
        return entries

    # ── Step 1: entry stats ────────────────────────────────────────

    async def reconcile_entry_stats(
        self,
        user_id: str,
        now: datetime,
        entries: list[EntryRecord] | None = None,
    ) -> bool:
        """Overwrite the current week's stats if they drifted from source. Returns True if written."""
        if entries is None:
            entries = await self.read_week_entries(user_id, now)
        recomputed = PeriodStats.from_entries([e for e in entries if e.is_complete])

        path = self.paths.entry_stats(user_id)
        key = period_key(now, Cadence.WEEKLY)
        stored_raw = ((await self.store.get(path)) or {}).get("periods", {}).get(key)

        if stored_raw is None:
            if recomputed.entry_count == 0:
                return False
        elif not recomputed.differs_from(PeriodStats.from_dict(stored_raw), self.settings.mood_sum_tolerance):
            return False

        await self.store.merge(path, {"periods": {key: Replace(recomputed.to_dict())}, "last_updated": now})
        logger.info(f"Reconciled entry_stats for {key} (user {user_id}): {recomputed.entry_count} entries")
        return True

    # ── Step 2: health trends ──────────────────────────────────────

    async def compute_health_trends(
        self,
        user_id: str,
        now: datetime,
        entries: list[EntryRecord] | None = None,
    ) -> HealthPeriod | None:
        """Regenerate the current week's health trends. Returns None when there is no health data."""
        if entries is None:
            entries = await self.read_week_entries(user_id, now)

        sleep: list[float] = []
        hrv: list[float] = []
        recovery: list[float] = []
        sleep_pairs: list[tuple[float, float]] = []
        hrv_pairs: list[tuple[float, float]] = []

        for entry in entries:
            health = entry.health
            if health is None:
                continue
            mood = entry.mood_score
            if health.sleep_score is not None:
                sleep.append(health.sleep_score)
                if mood is not None:
                    sleep_pairs.append((health.sleep_score, mood))
            if health.hrv is not None:
                hrv.append(health.hrv)
                if mood is not None:
                    hrv_pairs.append((health.hrv, mood))
            if health.recovery_score is not None:
                recovery.append(health.recovery_score)

        period = HealthPeriod(
            sleep_quality=self._summarize(sleep),
            hrv=self._summarize(hrv),
            recovery=self._summarize(recovery),
            mood_correlations=[
                c for c in (self._correlate("sleep_quality", sleep_pairs), self._correlate("hrv", hrv_pairs)) if c
            ],
        )
        if not period.has_data:
            return None

        path = self.paths.health_trends(user_id)
        stored = (await self.store.get(path)) or {}
        previous_raw = stored.get("periods", {}).get(previous_period_key(now, Cadence.WEEKLY))
        if previous_raw is not None:
            previous = HealthPeriod.from_dict(previous_raw)
            for metric in ("sleep_quality", "hrv", "recovery"):
                current_summary = getattr(period, metric)
                previous_summary = getattr(previous, metric)
                if current_summary and previous_summary:
                    current_summary.trend = classify_trend(
                        current_summary.mean,
                        previous_summary.mean,
                        self.settings.trend_threshold_ratio,
                    ).value

        key = period_key(now, Cadence.WEEKLY)
        await self.store.merge(path, {"periods": {key: Replace(period.to_dict())}, "last_updated": now})
        logger.info(
            f"Computed health trends for {key} (user {user_id}): "
            f"sleep={len(sleep)}, hrv={len(hrv)}, recovery={len(recovery)}"
        )
        return period

    @staticmethod
    def _summarize(values: list[float]) -> MetricSummary | None:
        if not values:
            return None
        summary = aggregate(values)
        return MetricSummary(mean=summary.mean, min=summary.min, max=summary.max, data_points=len(values))

    def _correlate(self, metric: str, pairs: list[tuple[float, float]]) -> MoodCorrelation | None:
        correlation = pearson_correlation(
            [p[0] for p in pairs],
            [p[1] for p in pairs],
            min_samples=self.settings.min_correlation_samples,
        )
        if correlation is None:
            return None
        return MoodCorrelation(
            metric=metric,
            correlation=round(correlation, 2),
            direction="positive" if correlation > 0 else "negative",
            sample_size=len(pairs),
        )

    # ── Step 3: coverage decay ─────────────────────────────────────

    async def decay_coverage(self, user_id: str, now: datetime) -> bool:
        """Fade coverage weights by the time since they were last brought current. Returns True if written."""
        path = self.paths.coverage(user_id)

        async def body(txn: Transaction) -> bool:
            document = await txn.get(path)
            if document is None:
                return False
            coverage = CoverageAggregate.from_dict(document)
            hours = hours_between(coverage.decayed_through or now, now)
            if hours < self.settings.min_decay_interval_hours:
                return False
            factor = recency_weight(hours / 24.0, self.settings.half_life_days)
            if not coverage.decay(factor):
                return False
            coverage.last_decayed = now
            txn.set(path, coverage.to_dict())
            return True

        return await self.store.transaction(body)

    # ── Steps 4-5: entity activity ─────────────────────────────────

    async def refresh_entity_recency(self, user_id: str, now: datetime) -> int:
        """Recompute entity recency scores; only changes beyond the write threshold are stored."""
        path = self.paths.entity_activity(user_id)
        document = await self.store.get(path)
        if document is None:
            return 0

        updates = {}
        for entity_id, raw in (document.get("entities") or {}).items():
            entity = EntityActivity.from_dict(raw)
            if entity.last_mention_date is None:
                continue
            days_ago = days_between(entity.last_mention_date, now)
            if days_ago > self.settings.stale_entity_days:
                continue  # pruned next
            score = recency_weight(days_ago, self.settings.half_life_days)
            if abs(score - entity.recency_score) > self.settings.recency_write_threshold:
                updates[entity_id] = {"recency_score": score}

        if updates:
            await self.store.merge(path, {"entities": updates, "last_updated": now})
        return len(updates)

    async def prune_stale_entities(self, user_id: str, now: datetime) -> int:
        """Delete entities not mentioned within the staleness window."""
        path = self.paths.entity_activity(user_id)
        document = await self.store.get(path)
        if document is None:
            return 0

        stale = []
        for entity_id, raw in (document.get("entities") or {}).items():
            last_mention = EntityActivity.from_dict(raw).last_mention_date
            if last_mention and days_between(last_mention, now) > self.settings.stale_entity_days:
                stale.append(entity_id)

        if stale:
            await self.store.delete(path, fields=[("entities", entity_id) for entity_id in stale])
            logger.info(f"Cleaned up {len(stale)} stale entities (user {user_id})")
        return len(stale)

    # ── Step 6: ledger trim ────────────────────────────────────────

    async def trim_processed_ids(self, user_id: str) -> bool:
        """Cap the processed-entry ledger. Returns True if it was trimmed."""
        path = self.paths.coverage(user_id)
        cap = self.settings.max_tracked_ids

        async def body(txn: Transaction) -> bool:
            document = await txn.get(path)
            if document is None:
                return False
            coverage = CoverageAggregate.from_dict(document)
            if not coverage.trim_processed(cap):
                return False
            txn.set(path, coverage.to_dict())
            return True

        return await self.store.transaction(body)
