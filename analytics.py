"""
Read-side derivations over a user's mastery records.

Everything here is recomputed from a snapshot of records on every call;
nothing is cached.
"""

import math
from datetime import datetime, timedelta
from typing import Iterable, List, Sequence

from schemas import MasteryRecord

ONE_DAY = timedelta(days=1)
MISTAKE_WINDOW = timedelta(days=7)
PROBLEMATIC_LIMIT = 5
WEAK_EASE = 2.3


def overall_mastery(records: Iterable[MasteryRecord]) -> int:
    """Lifetime accuracy across all records, as a whole percentage."""
    correct = 0
    attempts = 0
    for record in records:
        correct += record.times_correct
        attempts += record.times_correct + record.times_incorrect
    if attempts == 0:
        return 0
    # half-up, not banker's rounding
    return int(math.floor(correct / attempts * 100 + 0.5))


def current_streak(records: Iterable[MasteryRecord], now: datetime) -> int:
    """
    Count the most recently seen records whose last answer is at most one
    whole day old, stopping at the first older one.
    """
    streak = 0
    for record in sorted(records, key=lambda r: r.last_seen_at, reverse=True):
        if (now - record.last_seen_at) // ONE_DAY <= 1:
            streak += 1
        else:
            break
    return streak


def recent_mistake_count(record: MasteryRecord, now: datetime) -> int:
    cutoff = now - MISTAKE_WINDOW
    return sum(1 for ts in record.recent_mistakes if ts > cutoff)


def problematic_items(records: Iterable[MasteryRecord], now: datetime) -> List[str]:
    """Top items with mistakes in the last 7 days or a low ease factor."""
    scored = []
    for record in records:
        mistakes = recent_mistake_count(record, now)
        if mistakes > 0 or record.ease_factor < WEAK_EASE:
            score = mistakes * 10 + (3.0 - record.ease_factor)
            scored.append((-score, record.item_id))
    scored.sort()
    return [item_id for _, item_id in scored[:PROBLEMATIC_LIMIT]]


def due_items(records: Iterable[MasteryRecord], now: datetime) -> List[str]:
    """Items due for review, most overdue first."""
    due = [r for r in records if r.due_at <= now]
    due.sort(key=lambda r: (r.due_at, r.item_id))
    return [r.item_id for r in due]


# Practice set selection --------------------------------------------------

def _fill_unseen(
    ranked: List[str],
    records: List[MasteryRecord],
    catalog_ids: Sequence[str],
    count: int,
) -> List[str]:
    seen = {r.item_id for r in records}
    unseen = [item_id for item_id in catalog_ids if item_id not in seen]
    return (ranked + unseen)[:count]


def weak_items(
    records: Iterable[MasteryRecord], count: int, catalog_ids: Sequence[str] = ()
) -> List[str]:
    """Lowest rolling mastery first, then catalog items never attempted."""
    records = list(records)
    ordered = sorted(records, key=lambda r: (r.mastery_percentage, r.item_id))
    return _fill_unseen([r.item_id for r in ordered], records, catalog_ids, count)


def mistake_items(
    records: Iterable[MasteryRecord], count: int, catalog_ids: Sequence[str] = ()
) -> List[str]:
    """Most recent mistakes first, then catalog items never attempted."""
    records = list(records)
    with_mistakes = [r for r in records if r.mistake_count_7days > 0]
    with_mistakes.sort(key=lambda r: (-r.mistake_count_7days, r.item_id))
    return _fill_unseen([r.item_id for r in with_mistakes], records, catalog_ids, count)


__all__ = [
    "overall_mastery",
    "current_streak",
    "problematic_items",
    "due_items",
    "weak_items",
    "mistake_items",
]
