"""
Mastery update engine (SM-2 inspired).

``apply`` is the single implementation of the per-answer state transition.
It is pure: no I/O, and the existing record is never mutated.
"""

import math
from datetime import datetime, timedelta
from typing import Optional

from schemas import AnswerOutcome, MasteryRecord

MIN_EASE = 1.3
MAX_EASE = 3.0
FIRST_CORRECT_EASE = 2.5
EASE_STEP_UP = 0.1
EASE_STEP_DOWN = 0.2

ROLLING_WINDOW = 10
RECENT_MISTAKES_KEPT = 5

# (lower bound, status), checked top-down
STATUS_THRESHOLDS = (
    (85, "mastered"),
    (60, "reviewing"),
    (30, "learning"),
)


def classify(mastery_percentage: float) -> str:
    """Map a rolling mastery percentage onto a learning status."""
    for threshold, status in STATUS_THRESHOLDS:
        if mastery_percentage >= threshold:
            return status
    return "new"


def rolling_mastery(times_correct: int, times_seen: int) -> float:
    """
    Approximate trailing-10 accuracy.

    Past the window the cumulative correct count is divided by the window
    size, so the value can exceed 100. Downstream thresholds are tuned
    against this exact formula.
    """
    if times_seen <= 0:
        return 0.0
    if times_seen <= ROLLING_WINDOW:
        return 100 * times_correct / times_seen
    return 100 * times_correct / ROLLING_WINDOW


def _first_attempt(outcome: AnswerOutcome, now: datetime) -> MasteryRecord:
    correct = outcome.is_correct
    return MasteryRecord(
        user_id=outcome.user_id,
        item_id=outcome.item_id,
        status="learning" if correct else "new",
        times_seen=1,
        times_correct=1 if correct else 0,
        times_incorrect=0 if correct else 1,
        mastery_percentage=100.0 if correct else 0.0,
        ease_factor=FIRST_CORRECT_EASE if correct else MIN_EASE,
        interval_days=1,
        due_at=now + timedelta(days=1),
        streak_days=1 if correct else 0,
        mistake_count_7days=0 if correct else 1,
        recent_mistakes=[] if correct else [now],
        last_seen_at=now,
        version=1,
    )


def apply(
    existing: Optional[MasteryRecord],
    outcome: AnswerOutcome,
    now: datetime,
) -> MasteryRecord:
    """
    Compute the next mastery record after one answer.

    Input is assumed well-formed; callers validate the item id and the
    answer fields before getting here.
    """
    if existing is None:
        return _first_attempt(outcome, now)

    recent_mistakes = list(existing.recent_mistakes)

    if outcome.is_correct:
        # ease is stored to two decimals
        ease = min(round(existing.ease_factor + EASE_STEP_UP, 2), MAX_EASE)
        interval = math.ceil(round(existing.interval_days * ease, 6))
        streak = existing.streak_days + 1
        mistake_count = max(0, existing.mistake_count_7days - 1)
        times_correct = existing.times_correct + 1
        times_incorrect = existing.times_incorrect
    else:
        ease = max(round(existing.ease_factor - EASE_STEP_DOWN, 2), MIN_EASE)
        interval = 1
        streak = 0
        mistake_count = existing.mistake_count_7days + 1
        recent_mistakes = (recent_mistakes + [now])[-RECENT_MISTAKES_KEPT:]
        times_correct = existing.times_correct
        times_incorrect = existing.times_incorrect + 1

    times_seen = existing.times_seen + 1
    mastery = rolling_mastery(times_correct, times_seen)

    return existing.model_copy(
        update={
            "status": classify(mastery),
            "times_seen": times_seen,
            "times_correct": times_correct,
            "times_incorrect": times_incorrect,
            "mastery_percentage": mastery,
            "ease_factor": ease,
            "interval_days": interval,
            "due_at": now + timedelta(days=interval),
            "streak_days": streak,
            "mistake_count_7days": mistake_count,
            "recent_mistakes": recent_mistakes,
            "last_seen_at": now,
            "version": existing.version + 1,
        }
    )


__all__ = ["apply", "classify", "rolling_mastery", "MIN_EASE", "MAX_EASE"]
