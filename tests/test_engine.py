from datetime import timedelta

import pytest

import engine
from conftest import NOW, make_record
from schemas import AnswerOutcome


def answer(is_correct, item_id="hammer"):
    return AnswerOutcome(
        user_id="user-1", item_id=item_id, is_correct=is_correct, time_taken_seconds=12
    )


def test_first_answer_correct():
    record = engine.apply(None, answer(True), NOW)
    assert record.times_seen == 1
    assert record.times_correct == 1
    assert record.times_incorrect == 0
    assert record.mastery_percentage == 100
    assert record.ease_factor == 2.5
    assert record.interval_days == 1
    assert record.due_at == NOW + timedelta(days=1)
    assert record.status == "learning"
    assert record.streak_days == 1
    assert record.mistake_count_7days == 0
    assert record.recent_mistakes == []
    assert record.last_seen_at == NOW


def test_first_answer_incorrect():
    record = engine.apply(None, answer(False), NOW)
    assert record.times_seen == 1
    assert record.times_incorrect == 1
    assert record.mastery_percentage == 0
    assert record.ease_factor == 1.3
    assert record.interval_days == 1
    assert record.status == "new"
    assert record.streak_days == 0
    assert record.mistake_count_7days == 1
    assert record.recent_mistakes == [NOW]


def test_correct_answer_reaching_window_boundary():
    existing = make_record(
        times_seen=9, times_correct=9, times_incorrect=0, ease_factor=2.5, interval_days=4
    )
    record = engine.apply(existing, answer(True), NOW)
    assert record.ease_factor == pytest.approx(2.6)
    assert record.interval_days == 11
    assert record.times_seen == 10
    assert record.times_correct == 10
    assert record.mastery_percentage == 100
    assert record.status == "mastered"
    assert record.due_at == NOW + timedelta(days=11)


def test_ease_is_clamped_and_mastery_is_not():
    existing = make_record(
        times_seen=10, times_correct=10, times_incorrect=0, ease_factor=3.0, interval_days=20
    )
    record = engine.apply(existing, answer(True), NOW)
    assert record.ease_factor == 3.0
    assert record.interval_days == 60
    assert record.times_seen == 11
    assert record.times_correct == 11
    # cumulative correct over the 10-attempt window
    assert record.mastery_percentage == pytest.approx(110)
    assert record.status == "mastered"


def test_incorrect_answer_resets_streak_and_interval():
    existing = make_record(
        times_seen=8, times_correct=8, streak_days=7, mistake_count_7days=0,
        ease_factor=2.8, interval_days=30,
    )
    record = engine.apply(existing, answer(False), NOW)
    assert record.streak_days == 0
    assert record.mistake_count_7days == 1
    assert record.interval_days == 1
    assert record.ease_factor == pytest.approx(2.6)
    assert record.due_at == NOW + timedelta(days=1)
    assert record.recent_mistakes == [NOW]


def test_ease_never_drops_below_floor():
    existing = make_record(ease_factor=1.4, times_seen=3, times_correct=1, times_incorrect=2)
    record = engine.apply(existing, answer(False), NOW)
    assert record.ease_factor == 1.3


def test_correct_answer_decays_mistake_counter():
    existing = make_record(mistake_count_7days=2, recent_mistakes=[NOW - timedelta(days=1)])
    record = engine.apply(existing, answer(True), NOW)
    assert record.mistake_count_7days == 1
    assert record.recent_mistakes == [NOW - timedelta(days=1)]

    record = engine.apply(make_record(mistake_count_7days=0), answer(True), NOW)
    assert record.mistake_count_7days == 0


def test_recent_mistakes_keep_last_five():
    record = None
    stamps = [NOW + timedelta(hours=i) for i in range(7)]
    for ts in stamps:
        record = engine.apply(record, answer(False), ts)
    assert record.recent_mistakes == stamps[-5:]
    assert record.mistake_count_7days == 7


def test_existing_record_is_not_mutated():
    existing = make_record(times_seen=2, times_correct=2)
    engine.apply(existing, answer(False), NOW)
    assert existing.times_seen == 2
    assert existing.streak_days == 1
    assert existing.recent_mistakes == []


def test_version_increments():
    first = engine.apply(None, answer(True), NOW)
    second = engine.apply(first, answer(True), NOW)
    assert (first.version, second.version) == (1, 2)


@pytest.mark.parametrize(
    "pct, status",
    [(100, "mastered"), (85, "mastered"), (84.9, "reviewing"), (60, "reviewing"),
     (59.9, "learning"), (30, "learning"), (29.9, "new"), (0, "new")],
)
def test_classify_thresholds(pct, status):
    assert engine.classify(pct) == status


def test_invariants_hold_over_answer_sequence():
    sequence = [True, False, True, True, False, False, True, True, True, True, True, False, True, True]
    record = None
    now = NOW
    for is_correct in sequence:
        previous = record
        record = engine.apply(record, answer(is_correct), now)
        assert record.times_seen == record.times_correct + record.times_incorrect
        assert 1.3 <= record.ease_factor <= 3.0
        assert record.interval_days >= 1
        if previous is not None:
            assert record.status == engine.classify(record.mastery_percentage)
            if is_correct:
                assert record.ease_factor >= previous.ease_factor
                assert record.interval_days >= previous.interval_days
            else:
                assert record.interval_days == 1
                assert record.streak_days == 0
        now = record.due_at


def test_ease_just_below_ceiling_is_clamped():
    existing = make_record(ease_factor=2.95, interval_days=1)
    record = engine.apply(existing, answer(True), NOW)
    assert record.ease_factor == 3.0
    assert record.interval_days == 3
