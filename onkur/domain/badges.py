"""
Volunteer badges earned from cumulative logged minutes
"""
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List


@dataclass(frozen=True)
class BadgeDefinition:
    slug: str
    label: str
    description: str
    threshold_minutes: int


BADGES = (
    BadgeDefinition(
        "seedling", "Seedling",
        "Logged 10 hours of verified community support.", 600,
    ),
    BadgeDefinition(
        "grove-guardian", "Grove Guardian",
        "Logged 50 hours nurturing sustainable change.", 3000,
    ),
    BadgeDefinition(
        "forest-champion", "Forest Champion",
        "Logged 100 hours of environmental stewardship.", 6000,
    ),
)


def compute_badges(entries: Iterable[Any]) -> List[Dict[str, Any]]:
    """
    Scan hours entries in creation order and record, for each badge, the
    entry whose running total first reaches the threshold.

    Entries need ``minutes`` and ``created_at`` attributes; ``id`` breaks ties.
    """
    ordered = sorted(
        entries,
        key=lambda e: (e.created_at is None, e.created_at, getattr(e, "id", 0) or 0),
    )
    earned_at = {}
    total = 0
    for entry in ordered:
        total += int(entry.minutes or 0)
        for badge in BADGES:
            if badge.slug not in earned_at and total >= badge.threshold_minutes:
                earned_at[badge.slug] = entry.created_at

    return [
        {
            "slug": badge.slug,
            "label": badge.label,
            "description": badge.description,
            "threshold_minutes": badge.threshold_minutes,
            "earned": badge.slug in earned_at,
            "earned_at": earned_at.get(badge.slug),
        }
        for badge in BADGES
    ]
