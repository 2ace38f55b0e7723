from datetime import timedelta

import mongomock
import pytest

from conftest import NOW, make_record
from errors import ConcurrencyConflict
from schemas import Pattern, QuizAttempt
from store import InMemoryMasteryStore, MongoCatalog, MongoMasteryStore


@pytest.fixture
def mongo_db():
    return mongomock.MongoClient()["mastery_test"]


@pytest.fixture(params=["memory", "mongo"])
def any_store(request, mongo_db):
    if request.param == "memory":
        return InMemoryMasteryStore()
    return MongoMasteryStore(mongo_db)


def test_get_missing_returns_none(any_store):
    assert any_store.get("user-1", "hammer") is None


def test_insert_then_update(any_store):
    record = make_record(version=1, recent_mistakes=[NOW - timedelta(days=2)])
    any_store.upsert(record, expected_version=None)

    stored = any_store.get("user-1", "hammer")
    assert stored == record

    updated = record.model_copy(update={"times_seen": 2, "times_correct": 2, "version": 2})
    any_store.upsert(updated, expected_version=1)
    assert any_store.get("user-1", "hammer").times_seen == 2


def test_stale_version_is_rejected(any_store):
    any_store.upsert(make_record(version=1), expected_version=None)
    any_store.upsert(make_record(version=2, times_seen=2), expected_version=1)

    with pytest.raises(ConcurrencyConflict):
        any_store.upsert(make_record(version=2, times_seen=5), expected_version=1)
    assert any_store.get("user-1", "hammer").times_seen == 2


def test_concurrent_create_is_rejected(any_store):
    any_store.upsert(make_record(version=1), expected_version=None)
    with pytest.raises(ConcurrencyConflict):
        any_store.upsert(make_record(version=1), expected_version=None)


def test_list_for_user_is_scoped(any_store):
    any_store.upsert(make_record("hammer"), expected_version=None)
    any_store.upsert(make_record("doji"), expected_version=None)
    any_store.upsert(make_record("hammer", user_id="user-2"), expected_version=None)

    items = sorted(r.item_id for r in any_store.list_for_user("user-1"))
    assert items == ["doji", "hammer"]


def test_memory_store_returns_copies():
    store = InMemoryMasteryStore([make_record()])
    fetched = store.get("user-1", "hammer")
    fetched.recent_mistakes.append(NOW)
    assert store.get("user-1", "hammer").recent_mistakes == []


def test_mongo_store_returns_aware_datetimes(mongo_db):
    store = MongoMasteryStore(mongo_db)
    store.upsert(make_record(recent_mistakes=[NOW]), expected_version=None)
    stored = store.get("user-1", "hammer")
    assert stored.due_at.tzinfo is not None
    assert stored.last_seen_at == NOW
    assert stored.recent_mistakes == [NOW]


def test_record_attempt(mongo_db):
    store = MongoMasteryStore(mongo_db)
    store.record_attempt(
        QuizAttempt(
            user_id="user-1", item_id="hammer", question_type="identify",
            difficulty_level="beginner", is_correct=True, time_taken_seconds=9,
        )
    )
    assert mongo_db["quizattempt"].count_documents({"user_id": "user-1"}) == 1


def test_mongo_catalog(mongo_db):
    mongo_db["pattern"].insert_one(Pattern(id="doji", name="Doji").model_dump())
    catalog = MongoCatalog(mongo_db)
    assert catalog.item_exists("doji")
    assert not catalog.item_exists("hammer")
    assert catalog.get_item("doji").name == "Doji"
    assert catalog.list_item_ids() == ["doji"]


def test_mongo_catalog_lists_patterns_by_difficulty(mongo_db):
    mongo_db["pattern"].insert_many([
        Pattern(id="doji", name="Doji").model_dump(),
        Pattern(id="harami", name="Harami", difficulty="intermediate").model_dump(),
    ])
    catalog = MongoCatalog(mongo_db)
    assert [p.id for p in catalog.list_items()] == ["doji", "harami"]
    assert [p.id for p in catalog.list_items("intermediate")] == ["harami"]
    assert catalog.list_items("advanced") == []
