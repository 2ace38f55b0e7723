"""
Shared fixtures for scheduler tests.
"""

from datetime import datetime, timedelta, timezone

import pytest

from schemas import MasteryRecord, Pattern, QuickTest
from service import MasteryService
from store import InMemoryMasteryStore, StaticCatalog

# millisecond precision so values survive a MongoDB round trip unchanged
NOW = datetime(2024, 3, 15, 12, 0, 0, tzinfo=timezone.utc)


def make_record(item_id="hammer", user_id="user-1", **overrides) -> MasteryRecord:
    fields = dict(
        user_id=user_id,
        item_id=item_id,
        status="learning",
        times_seen=1,
        times_correct=1,
        times_incorrect=0,
        mastery_percentage=100.0,
        ease_factor=2.5,
        interval_days=1,
        due_at=NOW + timedelta(days=1),
        streak_days=1,
        mistake_count_7days=0,
        recent_mistakes=[],
        last_seen_at=NOW,
        version=1,
    )
    fields.update(overrides)
    return MasteryRecord(**fields)


@pytest.fixture
def patterns():
    return [
        Pattern(
            id="hammer",
            name="Hammer",
            difficulty="beginner",
            category="bullish",
            quick_test=QuickTest(
                question="Where does a hammer usually appear?",
                options=["After a downtrend", "After an uptrend", "Mid-range"],
                correct_index=0,
                explanation="A hammer is a bullish reversal after a decline.",
            ),
        ),
        Pattern(id="doji", name="Doji", difficulty="beginner", category="neutral"),
        Pattern(id="engulfing", name="Bullish Engulfing", difficulty="intermediate", category="bullish"),
    ]


@pytest.fixture
def store():
    return InMemoryMasteryStore()


@pytest.fixture
def service(store, patterns):
    return MasteryService(store, StaticCatalog(patterns), write_retries=3)
