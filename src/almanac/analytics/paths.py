"""Logical store paths for per-user analytics documents."""

from __future__ import annotations

from dataclasses import dataclass

from almanac.core.exceptions import InvalidPath

COVERAGE = "topic_coverage"
ENTRY_STATS = "entry_stats"
ENTITY_ACTIVITY = "entity_activity"
HEALTH_TRENDS = "health_trends"


def _check_id(value: str, kind: str) -> str:
    if not value or not isinstance(value, str) or "/" in value or value in (".", ".."):
        raise InvalidPath(f"Invalid {kind} id: {value!r}")
    return value


@dataclass(frozen=True)
class AnalyticsPaths:
    """Builds document paths under ``{root}/{user_id}/...``.

    Layout::

        {root}/{user_id}/analytics/topic_coverage
        {root}/{user_id}/analytics/entry_stats
        {root}/{user_id}/analytics/entity_activity
        {root}/{user_id}/analytics/health_trends
        {root}/{user_id}/entries/{entry_id}
    """

    root: str = "users"

    @property
    def users(self) -> str:
        return self.root

    def analytics(self, user_id: str, name: str) -> str:
        return f"{self.root}/{_check_id(user_id, 'user')}/analytics/{name}"

    def coverage(self, user_id: str) -> str:
        return self.analytics(user_id, COVERAGE)

    def entry_stats(self, user_id: str) -> str:
        return self.analytics(user_id, ENTRY_STATS)

    def entity_activity(self, user_id: str) -> str:
        return self.analytics(user_id, ENTITY_ACTIVITY)

    def health_trends(self, user_id: str) -> str:
        return self.analytics(user_id, HEALTH_TRENDS)

    def entries(self, user_id: str) -> str:
        return f"{self.root}/{_check_id(user_id, 'user')}/entries"

    def entry(self, user_id: str, entry_id: str) -> str:
        return f"{self.entries(user_id)}/{_check_id(entry_id, 'entry')}"
