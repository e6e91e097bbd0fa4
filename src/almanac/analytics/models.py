"""
Data models for analytics aggregates and their inputs.

Each aggregate model converts to and from the plain-dict document shape the
aggregate store persists (``to_dict`` / ``from_dict``).  ``from_dict`` is
lenient: missing fields fall back to empty values, since downstream readers
treat absent data as "insufficient data" rather than an error.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from .domains import LIFE_DOMAINS
from .periods import to_utc

COMPLETE = "complete"
DEFAULT_CATEGORY = "personal"
DEFAULT_ENTRY_TYPE = "mixed"
UNKNOWN_ENTITY_CATEGORY = "unknown"

_WHITESPACE_RE = re.compile(r"\s+")
_PATH_CHARS_RE = re.compile(r"[./\[\]#$]")


def _as_float(value: Any) -> float | None:
    """Numeric value as float; None for missing, non-numeric, bool or non-finite."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    value = float(value)
    return value if math.isfinite(value) else None


def _as_text(value: Any) -> str | None:
    return None if value is None else str(value)


def _as_datetime(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return to_utc(value)
    if isinstance(value, str) and value:
        return to_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
    return None


def _nested(document: dict[str, Any], *keys: str) -> Any:
    current: Any = document
    for key in keys:
        if not isinstance(current, dict):
            return None
        current = current.get(key)
    return current


# ── Inputs ──────────────────────────────────────────────────────────


@dataclass
class Tag:
    """A semantic tag produced by entry analysis."""

    type: str
    content: str | None = None
    category: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Tag:
        return cls(type=str(data.get("type") or ""), content=data.get("content"), category=data.get("category"))


@dataclass
class EntityMention:
    """A person, place or thing mentioned in an entry."""

    name: str | None = None
    id: str | None = None
    category: str | None = None
    entity_type: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EntityMention:
        return cls(
            name=_as_text(data.get("name")),
            id=_as_text(data.get("id")),
            category=_as_text(data.get("category")),
            entity_type=_as_text(data.get("entity_type") or data.get("entityType")),
        )

    @property
    def activity_id(self) -> str | None:
        """Storage-safe identifier: explicit id, else slugged name, with path characters replaced."""
        raw = _as_text(self.id)
        if not raw:
            name = _as_text(self.name)
            raw = _WHITESPACE_RE.sub("-", name.lower()) if name else None
        if not raw:
            return None
        return _PATH_CHARS_RE.sub("-", raw)

    @property
    def activity_category(self) -> str:
        return _as_text(self.category) or _as_text(self.entity_type) or UNKNOWN_ENTITY_CATEGORY


@dataclass
class HealthContext:
    """Health metrics attached to an entry by the capture pipeline."""

    sleep_score: float | None = None
    hrv: float | None = None
    recovery_score: float | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> HealthContext | None:
        if not isinstance(data, dict):
            return None
        return cls(
            sleep_score=_as_float(_nested(data, "sleep", "score")),
            hrv=_as_float(_nested(data, "heart", "hrv")),
            recovery_score=_as_float(_nested(data, "recovery", "score")),
        )


@dataclass
class EntryRecord:
    """A fully analyzed journal entry, as consumed by the analytics engine."""

    id: str
    user_id: str
    created_at: datetime
    mood_score: float | None = None
    category: str = DEFAULT_CATEGORY
    entry_type: str = DEFAULT_ENTRY_TYPE
    entities: list[EntityMention] = field(default_factory=list)
    tags: list[Tag] = field(default_factory=list)
    analysis_status: str = COMPLETE
    health: HealthContext | None = None

    def __post_init__(self):
        if not self.id or not isinstance(self.id, str):
            raise ValueError("Entry id must be a non-empty string")
        self.created_at = to_utc(self.created_at)
        self.mood_score = _as_float(self.mood_score)

    @property
    def is_complete(self) -> bool:
        return self.analysis_status == COMPLETE

    @classmethod
    def from_document(
        cls,
        entry_id: str,
        user_id: str,
        document: dict[str, Any],
        now: datetime | None = None,
    ) -> EntryRecord:
        """Build a record from a stored entry document.

        Mood comes from ``analysis`` then ``local_analysis``; category from
        ``local_analysis`` then the entry itself; a missing ``created_at``
        means "now".
        """
        analysis = document.get("analysis") or {}
        local = document.get("local_analysis") or {}

        mood = _as_float(analysis.get("mood_score"))
        if mood is None:
            mood = _as_float(local.get("mood_score"))

        created_at = _as_datetime(document.get("created_at")) or now or datetime.now(UTC)
        return cls(
            id=entry_id,
            user_id=user_id,
            created_at=created_at,
            mood_score=mood,
            category=local.get("category") or document.get("category") or DEFAULT_CATEGORY,
            entry_type=local.get("entry_type") or DEFAULT_ENTRY_TYPE,
            entities=[EntityMention.from_dict(e) for e in analysis.get("entities") or [] if isinstance(e, dict)],
            tags=[Tag.from_dict(t) for t in analysis.get("tags") or [] if isinstance(t, dict)],
            analysis_status=document.get("analysis_status") or "",
            health=HealthContext.from_dict(document.get("health_context")),
        )


# ── Entry statistics ────────────────────────────────────────────────


@dataclass
class PeriodStats:
    """Entry counts and mood statistics for one period."""

    entry_count: int = 0
    mood_sum: float = 0.0
    mood_count: int = 0
    mood_min: float = 0.0
    mood_max: float = 0.0
    category_breakdown: dict[str, int] = field(default_factory=dict)
    entry_type_distribution: dict[str, int] = field(default_factory=dict)

    @property
    def mood_mean(self) -> float | None:
        return self.mood_sum / self.mood_count if self.mood_count else None

    def add(self, entry: EntryRecord) -> None:
        """Fold one entry into the totals."""
        self.entry_count += 1
        if entry.mood_score is not None:
            if self.mood_count == 0:
                self.mood_min = self.mood_max = entry.mood_score
            else:
                self.mood_min = min(self.mood_min, entry.mood_score)
                self.mood_max = max(self.mood_max, entry.mood_score)
            self.mood_sum += entry.mood_score
            self.mood_count += 1
        self.category_breakdown[entry.category] = self.category_breakdown.get(entry.category, 0) + 1
        self.entry_type_distribution[entry.entry_type] = self.entry_type_distribution.get(entry.entry_type, 0) + 1

    @classmethod
    def from_entries(cls, entries: list[EntryRecord]) -> PeriodStats:
        stats = cls()
        for entry in entries:
            stats.add(entry)
        return stats

    def differs_from(self, other: PeriodStats, mood_sum_tolerance: float = 0.001) -> bool:
        """True on any count mismatch or a mood-sum gap beyond the tolerance."""
        return (
            self.entry_count != other.entry_count
            or self.mood_count != other.mood_count
            or abs(self.mood_sum - other.mood_sum) > mood_sum_tolerance
            or self.category_breakdown != other.category_breakdown
            or self.entry_type_distribution != other.entry_type_distribution
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "entry_count": self.entry_count,
            "mood_sum": self.mood_sum,
            "mood_count": self.mood_count,
            "category_breakdown": dict(self.category_breakdown),
            "entry_type_distribution": dict(self.entry_type_distribution),
        }
        # mood_min/mood_max are present only when mood_count > 0
        if self.mood_count:
            data["mood_min"] = self.mood_min
            data["mood_max"] = self.mood_max
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> PeriodStats:
        data = data or {}
        return cls(
            entry_count=int(data.get("entry_count") or 0),
            mood_sum=float(data.get("mood_sum") or 0.0),
            mood_count=int(data.get("mood_count") or 0),
            mood_min=float(data.get("mood_min") or 0.0),
            mood_max=float(data.get("mood_max") or 0.0),
            category_breakdown={k: int(v) for k, v in (data.get("category_breakdown") or {}).items()},
            entry_type_distribution={k: int(v) for k, v in (data.get("entry_type_distribution") or {}).items()},
        )


# ── Domain coverage ─────────────────────────────────────────────────


@dataclass
class DomainCoverage:
    """Decayable evidence mass for one life domain."""

    raw_weight: float = 0.0
    contributing_entry_ids: list[str] = field(default_factory=list)
    normalized_score: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "raw_weight": self.raw_weight,
            "contributing_entry_ids": list(self.contributing_entry_ids),
            "normalized_score": self.normalized_score,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> DomainCoverage:
        data = data or {}
        return cls(
            raw_weight=float(data.get("raw_weight") or 0.0),
            contributing_entry_ids=[str(i) for i in data.get("contributing_entry_ids") or []],
            normalized_score=float(data.get("normalized_score") or 0.0),
        )


def _append_capped(ids: list[str], entry_id: str, cap: int) -> list[str]:
    ids = [*ids, entry_id]
    return ids[-cap:] if len(ids) > cap else ids


@dataclass
class CoverageAggregate:
    """Per-user life-domain coverage with its idempotency ledger."""

    domains: dict[str, DomainCoverage] = field(default_factory=dict)
    processed_entry_ids: list[str] = field(default_factory=list)
    last_updated: datetime | None = None
    last_decayed: datetime | None = None

    def __post_init__(self):
        for domain in LIFE_DOMAINS:
            self.domains.setdefault(domain, DomainCoverage())

    @property
    def total_weight(self) -> float:
        return math.fsum(self.domains[d].raw_weight for d in LIFE_DOMAINS)

    @property
    def decayed_through(self) -> datetime | None:
        """Instant the stored weights were last brought current."""
        return self.last_decayed or self.last_updated

    def is_processed(self, entry_id: str) -> bool:
        return entry_id in self.processed_entry_ids

    def apply_entry(self, entry_id: str, domains: list[str], weight: float, cap: int) -> None:
        """Add ``weight`` to each domain, record the entry, renormalize."""
        for domain in domains:
            coverage = self.domains[domain]
            coverage.raw_weight += weight
            coverage.contributing_entry_ids = _append_capped(coverage.contributing_entry_ids, entry_id, cap)
        self.processed_entry_ids = _append_capped(self.processed_entry_ids, entry_id, cap)
        self.normalize()

    def normalize(self) -> None:
        total = self.total_weight
        for domain in LIFE_DOMAINS:
            coverage = self.domains[domain]
            coverage.normalized_score = coverage.raw_weight / total if total > 0 else 0.0

    def decay(self, factor: float) -> bool:
        """Scale all positive weights by ``factor``. Returns False if nothing had weight."""
        if self.total_weight <= 0:
            return False
        for domain in LIFE_DOMAINS:
            self.domains[domain].raw_weight *= factor
        self.normalize()
        return True

    def trim_processed(self, cap: int) -> bool:
        """Keep only the most recent ``cap`` processed ids. Returns True if trimmed."""
        if len(self.processed_entry_ids) <= cap:
            return False
        self.processed_entry_ids = self.processed_entry_ids[-cap:]
        return True

    def scores(self) -> dict[str, float]:
        return {d: self.domains[d].normalized_score for d in LIFE_DOMAINS}

    def to_dict(self) -> dict[str, Any]:
        return {
            "domains": {d: self.domains[d].to_dict() for d in LIFE_DOMAINS},
            "processed_entry_ids": list(self.processed_entry_ids),
            "last_updated": self.last_updated,
            "last_decayed": self.last_decayed,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> CoverageAggregate:
        data = data or {}
        domains = data.get("domains") or {}
        return cls(
            domains={d: DomainCoverage.from_dict(domains.get(d)) for d in LIFE_DOMAINS},
            processed_entry_ids=[str(i) for i in data.get("processed_entry_ids") or []],
            last_updated=_as_datetime(data.get("last_updated")),
            last_decayed=_as_datetime(data.get("last_decayed")),
        )


# ── Entity activity ─────────────────────────────────────────────────


@dataclass
class EntityActivity:
    """Mention history of one entity."""

    name: str | None
    category: str
    mention_count: int = 0
    last_mention_date: datetime | None = None
    recency_score: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "category": self.category,
            "mention_count": self.mention_count,
            "last_mention_date": self.last_mention_date,
            "recency_score": self.recency_score,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> EntityActivity:
        data = data or {}
        return cls(
            name=data.get("name"),
            category=data.get("category") or UNKNOWN_ENTITY_CATEGORY,
            mention_count=int(data.get("mention_count") or 0),
            last_mention_date=_as_datetime(data.get("last_mention_date")),
            recency_score=float(data.get("recency_score") or 0.0),
        )


# ── Health trends ───────────────────────────────────────────────────


@dataclass
class MetricSummary:
    """Summary of one health metric over a period."""

    mean: float
    min: float
    max: float
    data_points: int
    trend: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "mean": self.mean,
            "min": self.min,
            "max": self.max,
            "data_points": self.data_points,
        }
        if self.trend is not None:
            data["trend"] = self.trend
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> MetricSummary | None:
        if not isinstance(data, dict) or "mean" not in data:
            return None
        return cls(
            mean=float(data["mean"]),
            min=float(data.get("min", data["mean"])),
            max=float(data.get("max", data["mean"])),
            data_points=int(data.get("data_points") or 0),
            trend=data.get("trend"),
        )


@dataclass
class MoodCorrelation:
    """Correlation between mood and one health metric."""

    metric: str
    correlation: float
    direction: str
    sample_size: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "metric": self.metric,
            "correlation": self.correlation,
            "direction": self.direction,
            "sample_size": self.sample_size,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MoodCorrelation:
        return cls(
            metric=str(data.get("metric")),
            correlation=float(data.get("correlation") or 0.0),
            direction=str(data.get("direction") or ""),
            sample_size=int(data.get("sample_size") or 0),
        )


HEALTH_METRICS = ("sleep_quality", "hrv", "recovery")


@dataclass
class HealthPeriod:
    """Health metric summaries and mood correlations for one period."""

    sleep_quality: MetricSummary | None = None
    hrv: MetricSummary | None = None
    recovery: MetricSummary | None = None
    mood_correlations: list[MoodCorrelation] = field(default_factory=list)

    @property
    def has_data(self) -> bool:
        return any(getattr(self, metric) is not None for metric in HEALTH_METRICS)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        for metric in HEALTH_METRICS:
            summary = getattr(self, metric)
            if summary is not None:
                data[metric] = summary.to_dict()
        if self.mood_correlations:
            data["mood_correlations"] = [c.to_dict() for c in self.mood_correlations]
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> HealthPeriod:
        data = data or {}
        return cls(
            sleep_quality=MetricSummary.from_dict(data.get("sleep_quality")),
            hrv=MetricSummary.from_dict(data.get("hrv")),
            recovery=MetricSummary.from_dict(data.get("recovery")),
            mood_correlations=[
                MoodCorrelation.from_dict(c) for c in data.get("mood_correlations") or [] if isinstance(c, dict)
            ],
        )


# ── Results ─────────────────────────────────────────────────────────


@dataclass
class UpdateResult:
    """Outcome of processing one entry."""

    entry_id: str
    already_processed: bool = False
    domains: list[str] = field(default_factory=list)
    entity_count: int = 0


@dataclass
class UserRollupResult:
    """What one reconciliation pass changed for a user."""

    user_id: str
    stats_reconciled: bool = False
    health_trends_written: bool = False
    coverage_decayed: bool = False
    entities_refreshed: int = 0
    entities_pruned: int = 0
    ids_trimmed: bool = False


@dataclass
class RollupResult:
    """Summary of a reconciliation sweep."""

    users_processed: int = 0
    users_skipped: int = 0
    users_failed: list[str] = field(default_factory=list)
    results: list[UserRollupResult] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.users_failed
