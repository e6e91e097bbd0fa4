"""
Life-domain classification of analyzed entry tags.

Tags come from upstream entry analysis as ``{type, content?, category?}``
mappings.  Classification is keyword based, deterministic, and shared by
the incremental updater and any offline recomputation.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from enum import StrEnum
from typing import Any


class LifeDomain(StrEnum):
    """The eight fixed life domains coverage is tracked over."""

    WORK = "work"
    RELATIONSHIPS = "relationships"
    HEALTH = "health"
    CREATIVITY = "creativity"
    SPIRITUALITY = "spirituality"
    PERSONAL_GROWTH = "personal-growth"
    FAMILY = "family"
    FINANCES = "finances"


LIFE_DOMAINS: tuple[str, ...] = tuple(d.value for d in LifeDomain)

# ── Keyword sets (substring match against lowercased tag content) ──

HEALTH_KEYWORDS = (
    "exercise", "running", "gym", "yoga", "doctor", "medical", "therapy", "sleep",
    "workout", "walk", "swim", "hike", "meditation", "fitness", "diet", "nutrition",
)  # fmt: skip
CREATIVITY_KEYWORDS = (
    "painting", "drawing", "writing", "music", "art", "photography", "design", "craft",
    "dance", "poetry", "singing", "guitar", "piano", "sculpt", "compose",
)  # fmt: skip
WORK_KEYWORDS = (
    "meeting", "presentation", "project", "deadline", "office", "client", "interview",
    "report", "email", "conference", "promotion", "career", "salary", "manager", "boss",
    "colleague",
)  # fmt: skip
PERSONAL_GROWTH_KEYWORDS = (
    "learn", "study", "read", "course", "self-improvement", "growth", "habit", "mindset",
    "skill", "goal", "reflection", "journal",
)  # fmt: skip
FINANCE_KEYWORDS = (
    "budget", "invest", "save", "money", "finance", "debt", "expense", "income", "tax",
    "retirement",
)  # fmt: skip
SPIRITUALITY_KEYWORDS = (
    "pray", "worship", "church", "temple", "spiritual", "faith", "mindfulness",
    "gratitude", "soul", "divine",
)  # fmt: skip

DOMAIN_KEYWORDS: dict[LifeDomain, tuple[str, ...]] = {
    LifeDomain.HEALTH: HEALTH_KEYWORDS,
    LifeDomain.CREATIVITY: CREATIVITY_KEYWORDS,
    LifeDomain.WORK: WORK_KEYWORDS,
    LifeDomain.PERSONAL_GROWTH: PERSONAL_GROWTH_KEYWORDS,
    LifeDomain.FINANCES: FINANCE_KEYWORDS,
    LifeDomain.SPIRITUALITY: SPIRITUALITY_KEYWORDS,
}

# Activities are checked in this order; first match wins.
_ACTIVITY_PRIORITY = (LifeDomain.HEALTH, LifeDomain.CREATIVITY, LifeDomain.WORK)


def matches_keywords(content: str | None, keywords: Iterable[str]) -> bool:
    """True if any keyword is a substring of the lowercased content."""
    if not content:
        return False
    lower = content.lower()
    return any(k in lower for k in keywords)


def _tag_field(tag: Any, name: str) -> Any:
    if isinstance(tag, Mapping):
        return tag.get(name)
    return getattr(tag, name, None)


def map_tag_to_domain(tag: Any) -> str | None:
    """Classify one tag into a life domain, or None if it doesn't map.

    Accepts a mapping or any object with ``type``/``content``/``category``
    attributes (e.g. :class:`~almanac.analytics.models.Tag`).
    """
    if tag is None:
        return None
    tag_type = _tag_field(tag, "type")
    content = _tag_field(tag, "content") or ""

    if tag_type == "person":
        return LifeDomain.FAMILY.value if _tag_field(tag, "category") == "family" else LifeDomain.RELATIONSHIPS.value

    if tag_type == "activity":
        for domain in _ACTIVITY_PRIORITY:
            if matches_keywords(content, DOMAIN_KEYWORDS[domain]):
                return domain.value
        return None

    if tag_type == "goal":
        if matches_keywords(content, WORK_KEYWORDS):
            return LifeDomain.WORK.value
        return LifeDomain.PERSONAL_GROWTH.value

    return None


def domains_for_tags(tags: Iterable[Any]) -> list[str]:
    """Distinct domains for a tag list, in first-seen order."""
    seen: dict[str, None] = {}
    for tag in tags or ():
        domain = map_tag_to_domain(tag)
        if domain:
            seen.setdefault(domain, None)
    return list(seen)
