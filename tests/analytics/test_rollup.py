"""Tests for almanac.analytics.rollup."""

import asyncio
from datetime import timedelta

import pytest

from almanac.analytics.models import CoverageAggregate, UserRollupResult
from almanac.analytics.periods import period_key, previous_period_key
from almanac.analytics.rollup import ReconciliationJob
from almanac.analytics.updater import IncrementalUpdater
from almanac.core.config_schema import AnalyticsSettings
from almanac.core.exceptions import UpstreamReadFailure
from almanac.core.storage import InMemoryAggregateStore, Increment


def entry_doc(created_at, mood=None, status="complete", category=None, sleep=None, hrv=None, recovery=None, tags=()):
    doc = {
        "created_at": created_at,
        "analysis_status": status,
        "analysis": {"tags": [{"type": "activity", "content": t} for t in tags]},
    }
    if mood is not None:
        doc["analysis"]["mood_score"] = mood
    if category:
        doc["local_analysis"] = {"category": category}
    health = {}
    if sleep is not None:
        health["sleep"] = {"score": sleep}
    if hrv is not None:
        health["heart"] = {"hrv": hrv}
    if recovery is not None:
        health["recovery"] = {"score": recovery}
    if health:
        doc["health_context"] = health
    return doc


async def seed_coverage(store, paths, user_id, last_updated, weights=None, processed=(), last_decayed=None):
    coverage = CoverageAggregate(
        processed_entry_ids=list(processed), last_updated=last_updated, last_decayed=last_decayed
    )
    for domain, weight in (weights or {}).items():
        coverage.domains[domain].raw_weight = weight
    coverage.normalize()
    await store.set(paths.coverage(user_id), coverage.to_dict())


@pytest.fixture
def job(store, settings, paths, clock):
    return ReconciliationJob(store, settings, paths, clock=clock)


class TestEntryStatsReconciliation:
    @pytest.mark.asyncio
    async def test_repairs_drift_then_converges(self, job, store, settings, paths, clock):
        updater = IncrementalUpdater(store, settings, paths, clock=clock)
        for i, mood in enumerate([6, 8]):
            doc = entry_doc(clock.now - timedelta(hours=i), mood=mood, category="work")
            await store.set(paths.entry("u1", f"e{i}"), doc)
            await updater.handle_entry_change("u1", f"e{i}", None, doc)

        key = period_key(clock.now, "weekly")
        await store.merge(paths.entry_stats("u1"), {"periods": {key: {"entry_count": Increment(5)}}})

        assert await job.reconcile_entry_stats("u1", clock.now)
        period = (await store.get(paths.entry_stats("u1")))["periods"][key]
        assert period["entry_count"] == 2
        assert period["mood_sum"] == pytest.approx(14)
        assert period["mood_min"] == 6
        assert period["mood_max"] == 8
        assert period["category_breakdown"] == {"work": 2}

        assert not await job.reconcile_entry_stats("u1", clock.now)

    @pytest.mark.asyncio
    async def test_matching_stats_not_rewritten(self, job, store, settings, paths, clock):
        updater = IncrementalUpdater(store, settings, paths, clock=clock)
        doc = entry_doc(clock.now, mood=7)
        await store.set(paths.entry("u1", "e1"), doc)
        await updater.handle_entry_change("u1", "e1", None, doc)
        assert not await job.reconcile_entry_stats("u1", clock.now)

    @pytest.mark.asyncio
    async def test_only_complete_entries_counted(self, job, store, paths, clock):
        await store.set(paths.entry("u1", "e1"), entry_doc(clock.now, mood=5))
        await store.set(paths.entry("u1", "e2"), entry_doc(clock.now, mood=9, status="pending"))
        assert await job.reconcile_entry_stats("u1", clock.now)
        period = (await store.get(paths.entry_stats("u1")))["periods"][period_key(clock.now, "weekly")]
        assert period["entry_count"] == 1
        assert period["mood_sum"] == 5

    @pytest.mark.asyncio
    async def test_entries_outside_week_ignored(self, job, store, paths, clock):
        await store.set(paths.entry("u1", "old"), entry_doc(clock.now - timedelta(days=9), mood=5))
        assert not await job.reconcile_entry_stats("u1", clock.now)
        assert await store.get(paths.entry_stats("u1")) is None

    @pytest.mark.asyncio
    async def test_stored_week_without_entries_is_cleared(self, job, store, paths, clock):
        key = period_key(clock.now, "weekly")
        await store.set(paths.entry_stats("u1"), {"periods": {key: {"entry_count": 3, "mood_count": 0}}})
        assert await job.reconcile_entry_stats("u1", clock.now)
        period = (await store.get(paths.entry_stats("u1")))["periods"][key]
        assert period["entry_count"] == 0

    @pytest.mark.asyncio
    async def test_other_periods_untouched(self, job, store, paths, clock):
        monthly = period_key(clock.now, "monthly")
        await store.set(paths.entry_stats("u1"), {"periods": {monthly: {"entry_count": 42}}})
        await store.set(paths.entry("u1", "e1"), entry_doc(clock.now))
        await job.reconcile_entry_stats("u1", clock.now)
        periods = (await store.get(paths.entry_stats("u1")))["periods"]
        assert periods[monthly] == {"entry_count": 42}


class TestHealthTrends:
    @pytest.mark.asyncio
    async def test_summaries_and_correlation(self, job, store, paths, clock):
        for i, (sleep, hrv, mood) in enumerate([(60, 40, 5), (70, 50, 6), (80, 45, 7)]):
            await store.set(
                paths.entry("u1", f"e{i}"),
                entry_doc(clock.now - timedelta(hours=i), mood=mood, sleep=sleep, hrv=hrv),
            )

        period = await job.compute_health_trends("u1", clock.now)
        assert period.sleep_quality.mean == pytest.approx(70)
        assert period.sleep_quality.min == 60
        assert period.sleep_quality.max == 80
        assert period.sleep_quality.data_points == 3
        assert period.recovery is None

        correlations = {c.metric: c for c in period.mood_correlations}
        assert correlations["sleep_quality"].correlation == 1.0
        assert correlations["sleep_quality"].direction == "positive"
        assert correlations["sleep_quality"].sample_size == 3
        assert "hrv" in correlations

        stored = (await store.get(paths.health_trends("u1")))["periods"][period_key(clock.now, "weekly")]
        assert stored["sleep_quality"]["data_points"] == 3
        assert "trend" not in stored["sleep_quality"]
        assert "recovery" not in stored

    @pytest.mark.asyncio
    async def test_too_few_pairs_no_correlation(self, job, store, paths, clock):
        await store.set(paths.entry("u1", "e1"), entry_doc(clock.now, mood=5, sleep=70))
        await store.set(paths.entry("u1", "e2"), entry_doc(clock.now, sleep=90))
        period = await job.compute_health_trends("u1", clock.now)
        assert period.sleep_quality.data_points == 2
        assert period.mood_correlations == []

    @pytest.mark.asyncio
    async def test_week_over_week_trend(self, job, store, paths, clock):
        previous = previous_period_key(clock.now, "weekly")
        await store.set(
            paths.health_trends("u1"),
            {
                "periods": {
                    previous: {
                        "sleep_quality": {"mean": 60, "min": 60, "max": 60, "data_points": 1},
                        "recovery": {"mean": 50, "min": 50, "max": 50, "data_points": 1},
                    }
                }
            },
        )
        await store.set(paths.entry("u1", "e1"), entry_doc(clock.now, sleep=70, hrv=50, recovery=51))

        period = await job.compute_health_trends("u1", clock.now)
        assert period.sleep_quality.trend == "improving"
        assert period.recovery.trend == "stable"
        assert period.hrv.trend is None

        periods = (await store.get(paths.health_trends("u1")))["periods"]
        assert previous in periods
        assert periods[period_key(clock.now, "weekly")]["sleep_quality"]["trend"] == "improving"

    @pytest.mark.asyncio
    async def test_non_finite_metrics_ignored(self, job, store, paths, clock):
        for i, sleep in enumerate([70, float("inf"), float("-inf")]):
            await store.set(paths.entry("u1", f"e{i}"), entry_doc(clock.now - timedelta(hours=i), mood=6, sleep=sleep))

        period = await job.compute_health_trends("u1", clock.now)
        assert period.sleep_quality.mean == pytest.approx(70)
        assert period.sleep_quality.data_points == 1
        assert period.mood_correlations == []

    @pytest.mark.asyncio
    async def test_non_finite_metrics_do_not_block_later_steps(self, job, store, paths, clock):
        await seed_coverage(store, paths, "u1", clock.now - timedelta(hours=1), {"health": 1.0}, processed=["e0"])
        for i, sleep in enumerate([70, float("inf"), float("-inf")]):
            await store.set(paths.entry("u1", f"e{i}"), entry_doc(clock.now - timedelta(hours=i), mood=6, sleep=sleep))

        clock.advance(hours=3)
        result = await job.run()
        assert result.users_failed == []
        assert result.results[0].health_trends_written
        assert result.results[0].coverage_decayed
        coverage = await store.get(paths.coverage("u1"))
        assert coverage["domains"]["health"]["raw_weight"] < 1.0

    @pytest.mark.asyncio
    async def test_no_health_data(self, job, store, paths, clock):
        await store.set(paths.entry("u1", "e1"), entry_doc(clock.now, mood=5))
        assert await job.compute_health_trends("u1", clock.now) is None
        assert await store.get(paths.health_trends("u1")) is None


class TestCoverageDecay:
    @pytest.mark.asyncio
    async def test_decay_by_elapsed_time(self, job, store, paths, clock):
        await seed_coverage(store, paths, "u1", clock.now - timedelta(days=14), {"health": 0.8, "work": 0.2})
        assert await job.decay_coverage("u1", clock.now)

        coverage = CoverageAggregate.from_dict(await store.get(paths.coverage("u1")))
        assert coverage.domains["health"].raw_weight == pytest.approx(0.4)
        assert coverage.domains["work"].raw_weight == pytest.approx(0.1)
        assert coverage.scores()["health"] == pytest.approx(0.8)
        assert coverage.last_decayed == clock.now
        assert coverage.last_updated == clock.now - timedelta(days=14)

    @pytest.mark.asyncio
    async def test_measured_from_last_decay(self, job, store, paths, clock):
        updated, decayed = clock.now - timedelta(days=28), clock.now - timedelta(days=14)
        await seed_coverage(store, paths, "u1", updated, {"health": 1.0}, last_decayed=decayed)
        assert await job.decay_coverage("u1", clock.now)
        coverage = CoverageAggregate.from_dict(await store.get(paths.coverage("u1")))
        assert coverage.domains["health"].raw_weight == pytest.approx(0.5)

    @pytest.mark.asyncio
    async def test_decay_is_monotone_and_idempotent_at_same_time(self, job, store, paths, clock):
        await seed_coverage(store, paths, "u1", clock.now - timedelta(days=3), {"health": 1.0})
        await job.decay_coverage("u1", clock.now)
        first = (await store.get(paths.coverage("u1")))["domains"]["health"]["raw_weight"]
        assert first < 1.0
        assert not await job.decay_coverage("u1", clock.now)
        assert (await store.get(paths.coverage("u1")))["domains"]["health"]["raw_weight"] == first

    @pytest.mark.asyncio
    async def test_within_min_interval_skipped(self, job, store, paths, clock):
        await seed_coverage(store, paths, "u1", clock.now - timedelta(minutes=30), {"health": 1.0})
        assert not await job.decay_coverage("u1", clock.now)

    @pytest.mark.asyncio
    async def test_zero_weight_skipped(self, job, store, paths, clock):
        await seed_coverage(store, paths, "u1", clock.now - timedelta(days=2))
        assert not await job.decay_coverage("u1", clock.now)

    @pytest.mark.asyncio
    async def test_missing_document(self, job, clock):
        assert not await job.decay_coverage("nobody", clock.now)


class TestEntities:
    @pytest.fixture
    def entities(self, clock):
        return {
            "sam": {"name": "Sam", "category": "person", "mention_count": 4,
                    "last_mention_date": clock.now - timedelta(days=14), "recency_score": 1.0},
            "lee": {"name": "Lee", "category": "person", "mention_count": 1,
                    "last_mention_date": clock.now - timedelta(days=14), "recency_score": 0.495},
            "old": {"name": "Old", "category": "place", "mention_count": 2,
                    "last_mention_date": clock.now - timedelta(days=120), "recency_score": 0.3},
        }  # fmt: skip

    @pytest.mark.asyncio
    async def test_refresh_writes_only_significant_changes(self, job, store, paths, clock, entities):
        await store.set(paths.entity_activity("u1"), {"entities": entities})
        assert await job.refresh_entity_recency("u1", clock.now) == 1

        stored = (await store.get(paths.entity_activity("u1")))["entities"]
        assert stored["sam"]["recency_score"] == pytest.approx(0.5)
        assert stored["sam"]["mention_count"] == 4
        assert stored["lee"]["recency_score"] == 0.495
        assert stored["old"]["recency_score"] == 0.3

    @pytest.mark.asyncio
    async def test_prune_stale(self, job, store, paths, clock, entities):
        await store.set(paths.entity_activity("u1"), {"entities": entities})
        assert await job.prune_stale_entities("u1", clock.now) == 1
        stored = (await store.get(paths.entity_activity("u1")))["entities"]
        assert set(stored) == {"sam", "lee"}

    @pytest.mark.asyncio
    async def test_missing_document(self, job, clock):
        assert await job.refresh_entity_recency("u1", clock.now) == 0
        assert await job.prune_stale_entities("u1", clock.now) == 0


class TestTrim:
    @pytest.mark.asyncio
    async def test_trims_to_cap_without_touching_last_updated(self, store, paths, clock):
        job = ReconciliationJob(store, AnalyticsSettings(max_tracked_ids=2), paths, clock=clock)
        stamp = clock.now - timedelta(hours=5)
        await seed_coverage(store, paths, "u1", stamp, processed=["a", "b", "c", "d"])

        assert await job.trim_processed_ids("u1")
        coverage = CoverageAggregate.from_dict(await store.get(paths.coverage("u1")))
        assert coverage.processed_entry_ids == ["c", "d"]
        assert coverage.last_updated == stamp
        assert not await job.trim_processed_ids("u1")


class TestReadWeekEntries:
    @pytest.mark.asyncio
    async def test_ordered_by_created_at(self, job, store, paths, clock):
        await store.set(paths.entry("u1", "late"), entry_doc(clock.now))
        await store.set(paths.entry("u1", "early"), entry_doc(clock.now - timedelta(days=2)))
        entries = await job.read_week_entries("u1", clock.now)
        assert [e.id for e in entries] == ["early", "late"]

    @pytest.mark.asyncio
    async def test_upstream_failure_wrapped(self, paths, clock):
        class FailingStore(InMemoryAggregateStore):
            async def query(self, *args, **kwargs):
                raise OSError("disk gone")

        job = ReconciliationJob(FailingStore(), paths=paths, clock=clock)
        with pytest.raises(UpstreamReadFailure):
            await job.read_week_entries("u1", clock.now)


class TestSweep:
    @pytest.mark.asyncio
    async def test_active_users_only(self, job, store, paths, clock):
        await seed_coverage(store, paths, "active", clock.now - timedelta(hours=2), {"health": 1.0})
        await seed_coverage(store, paths, "idle", clock.now - timedelta(hours=48), {"health": 1.0})
        await store.set(paths.entry("nocoverage", "e1"), entry_doc(clock.now))

        result = await job.run()
        assert result.success
        assert result.users_processed == 1
        assert result.users_skipped == 2
        assert result.results[0].user_id == "active"
        assert result.results[0].coverage_decayed

        idle = await store.get(paths.coverage("idle"))
        assert idle["domains"]["health"]["raw_weight"] == 1.0

    @pytest.mark.asyncio
    async def test_decay_alone_does_not_keep_user_active(self, job, store, paths, clock):
        await seed_coverage(store, paths, "u1", clock.now - timedelta(hours=2), {"health": 1.0})

        for _ in range(22):
            clock.advance(hours=1)
            result = await job.run()
            assert result.users_processed == 1

        clock.advance(hours=1)
        result = await job.run()
        assert result.users_processed == 0
        assert result.users_skipped == 1

    @pytest.mark.asyncio
    async def test_full_pass(self, job, store, settings, paths, clock):
        updater = IncrementalUpdater(store, settings, paths, clock=clock)
        doc = entry_doc(clock.now - timedelta(hours=3), mood=6, sleep=75, tags=["yoga"])
        await store.set(paths.entry("u1", "e1"), doc)
        await updater.handle_entry_change("u1", "e1", None, doc)

        clock.advance(hours=2)
        result = await job.run()
        user = result.results[0]
        assert user.stats_reconciled is False
        assert user.health_trends_written is True
        assert user.coverage_decayed is True
        assert user.ids_trimmed is False

    @pytest.mark.asyncio
    async def test_failing_user_isolated(self, store, settings, paths, clock):
        class PartlyBroken(ReconciliationJob):
            async def process_user(self, user_id, now=None):
                if user_id == "bad":
                    raise RuntimeError("boom")
                return UserRollupResult(user_id=user_id)

        for user_id in ("a", "bad", "c"):
            await seed_coverage(store, paths, user_id, clock.now)

        result = await PartlyBroken(store, settings, paths, clock=clock).run()
        assert result.users_failed == ["bad"]
        assert result.users_processed == 2
        assert not result.success

    @pytest.mark.asyncio
    async def test_timeout_counts_as_failure(self, store, paths, clock):
        class Slow(ReconciliationJob):
            async def process_user(self, user_id, now=None):
                if user_id == "slow":
                    await asyncio.sleep(5)
                return UserRollupResult(user_id=user_id)

        for user_id in ("fast", "slow"):
            await seed_coverage(store, paths, user_id, clock.now)

        settings = AnalyticsSettings(user_timeout_seconds=0.05)
        result = await Slow(store, settings, paths, clock=clock).run()
        assert result.users_failed == ["slow"]
        assert result.users_processed == 1

    @pytest.mark.asyncio
    async def test_bounded_parallelism(self, store, paths, clock):
        running = 0
        peak = 0

        class Tracking(ReconciliationJob):
            async def process_user(self, user_id, now=None):
                nonlocal running, peak
                running += 1
                peak = max(peak, running)
                await asyncio.sleep(0.01)
                running -= 1
                return UserRollupResult(user_id=user_id)

        for i in range(6):
            await seed_coverage(store, paths, f"u{i}", clock.now)

        settings = AnalyticsSettings(max_concurrent_users=2)
        result = await Tracking(store, settings, paths, clock=clock).run()
        assert result.users_processed == 6
        assert peak == 2

    @pytest.mark.asyncio
    async def test_no_users(self, job):
        result = await job.run()
        assert result.users_processed == 0
        assert result.success
