from datetime import datetime, timedelta
from types import SimpleNamespace

from onkur.domain.badges import compute_badges

START = datetime(2026, 1, 1, 9, 0)


def entry(id, minutes, day):
    return SimpleNamespace(id=id, minutes=minutes, created_at=START + timedelta(days=day))


def by_slug(badges):
    return {badge["slug"]: badge for badge in badges}


def test_no_entries_earns_nothing():
    badges = compute_badges([])
    assert [b["slug"] for b in badges] == ["seedling", "grove-guardian", "forest-champion"]
    assert not any(b["earned"] for b in badges)


def test_badge_earned_at_first_crossing():
    entries = [entry(1, 300, 0), entry(2, 299, 1), entry(3, 1, 2), entry(4, 500, 3)]
    badges = by_slug(compute_badges(entries))
    assert badges["seedling"]["earned"]
    assert badges["seedling"]["earned_at"] == START + timedelta(days=2)
    assert not badges["grove-guardian"]["earned"]
    assert badges["grove-guardian"]["earned_at"] is None


def test_entries_are_scanned_in_creation_order():
    entries = [entry(2, 3000, 5), entry(1, 600, 1)]
    badges = by_slug(compute_badges(entries))
    assert badges["seedling"]["earned_at"] == START + timedelta(days=1)
    assert badges["grove-guardian"]["earned_at"] == START + timedelta(days=5)


def test_one_entry_can_cross_several_thresholds():
    badges = by_slug(compute_badges([entry(1, 6000, 0)]))
    assert all(b["earned"] for b in badges.values())
    assert badges["forest-champion"]["threshold_minutes"] == 6000
