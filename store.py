"""
Persistence collaborators: the mastery record store and the pattern catalog.

The engine never touches these. ``MasteryService`` reads a record, runs the
engine and writes the result back with an optimistic version check.
"""
import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pymongo import ASCENDING
from pymongo.errors import DuplicateKeyError

from errors import ConcurrencyConflict
from schemas import MasteryRecord, Pattern, QuizAttempt

logger = logging.getLogger(__name__)

RECORD_COLLECTION = "masteryrecord"
ATTEMPT_COLLECTION = "quizattempt"
PATTERN_COLLECTION = "pattern"


class MasteryStore(ABC):
    @abstractmethod
    def get(self, user_id: str, item_id: str) -> Optional[MasteryRecord]:
        ...

    @abstractmethod
    def upsert(self, record: MasteryRecord, expected_version: Optional[int]) -> None:
        """
        Write ``record``.

        ``expected_version`` is the version that was read before the update,
        or None when no record existed. Raises ConcurrencyConflict when the
        stored state no longer matches.
        """

    @abstractmethod
    def list_for_user(self, user_id: str) -> List[MasteryRecord]:
        ...

    @abstractmethod
    def record_attempt(self, attempt: QuizAttempt) -> None:
        ...


class InMemoryMasteryStore(MasteryStore):
    """Process-local store, used for previews and tests."""

    def __init__(self, records: Iterable[MasteryRecord] = ()) -> None:
        self._lock = threading.Lock()
        self._records: Dict[Tuple[str, str], MasteryRecord] = {
            (r.user_id, r.item_id): r for r in records
        }
        self.attempts: List[QuizAttempt] = []

    def get(self, user_id: str, item_id: str) -> Optional[MasteryRecord]:
        with self._lock:
            record = self._records.get((user_id, item_id))
        return record.model_copy(deep=True) if record else None

    def upsert(self, record: MasteryRecord, expected_version: Optional[int]) -> None:
        key = (record.user_id, record.item_id)
        with self._lock:
            current = self._records.get(key)
            current_version = current.version if current else None
            if current_version != expected_version:
                raise ConcurrencyConflict(
                    f"record {key} is at version {current_version}, expected {expected_version}"
                )
            self._records[key] = record.model_copy(deep=True)

    def list_for_user(self, user_id: str) -> List[MasteryRecord]:
        with self._lock:
            return [
                r.model_copy(deep=True)
                for (uid, _), r in self._records.items()
                if uid == user_id
            ]

    def record_attempt(self, attempt: QuizAttempt) -> None:
        with self._lock:
            self.attempts.append(attempt)


def _utc(value: datetime) -> datetime:
    # pymongo hands back naive datetimes that are already UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _record_from_doc(doc: Dict[str, Any]) -> MasteryRecord:
    doc = {k: v for k, v in doc.items() if k != "_id"}
    doc["due_at"] = _utc(doc["due_at"])
    doc["last_seen_at"] = _utc(doc["last_seen_at"])
    doc["recent_mistakes"] = [_utc(ts) for ts in doc.get("recent_mistakes", [])]
    return MasteryRecord(**doc)


class MongoMasteryStore(MasteryStore):
    def __init__(self, database) -> None:
        self.collection = database[RECORD_COLLECTION]
        self.attempts = database[ATTEMPT_COLLECTION]
        self.collection.create_index(
            [("user_id", ASCENDING), ("item_id", ASCENDING)], unique=True
        )
        self.collection.create_index([("user_id", ASCENDING), ("due_at", ASCENDING)])
        logger.debug("Ensured indexes on %s", RECORD_COLLECTION)

    def get(self, user_id: str, item_id: str) -> Optional[MasteryRecord]:
        doc = self.collection.find_one({"user_id": user_id, "item_id": item_id})
        if doc is None:
            return None
        return _record_from_doc(doc)

    def upsert(self, record: MasteryRecord, expected_version: Optional[int]) -> None:
        payload = record.model_dump()
        if expected_version is None:
            try:
                self.collection.insert_one(payload)
            except DuplicateKeyError as e:
                raise ConcurrencyConflict(
                    f"record ({record.user_id}, {record.item_id}) was created concurrently"
                ) from e
            return

        result = self.collection.update_one(
            {
                "user_id": record.user_id,
                "item_id": record.item_id,
                "version": expected_version,
            },
            {"$set": payload},
        )
        if result.matched_count == 0:
            raise ConcurrencyConflict(
                f"record ({record.user_id}, {record.item_id}) changed since version {expected_version}"
            )

    def list_for_user(self, user_id: str) -> List[MasteryRecord]:
        return [_record_from_doc(doc) for doc in self.collection.find({"user_id": user_id})]

    def record_attempt(self, attempt: QuizAttempt) -> None:
        self.attempts.insert_one(attempt.model_dump())


# Catalog ----------------------------------------------------------------

class Catalog(ABC):
    @abstractmethod
    def get_item(self, item_id: str) -> Optional[Pattern]:
        ...

    @abstractmethod
    def list_items(self, difficulty: Optional[str] = None) -> List[Pattern]:
        """Catalog entries in insertion order, optionally of one difficulty."""

    def list_item_ids(self) -> List[str]:
        return [p.id for p in self.list_items()]

    def item_exists(self, item_id: str) -> bool:
        return self.get_item(item_id) is not None


class StaticCatalog(Catalog):
    def __init__(self, patterns: Iterable[Pattern]) -> None:
        self._patterns = {p.id: p for p in patterns}

    def get_item(self, item_id: str) -> Optional[Pattern]:
        return self._patterns.get(item_id)

    def list_items(self, difficulty: Optional[str] = None) -> List[Pattern]:
        return [
            p for p in self._patterns.values()
            if difficulty is None or p.difficulty == difficulty
        ]


class MongoCatalog(Catalog):
    def __init__(self, database) -> None:
        self.collection = database[PATTERN_COLLECTION]

    def get_item(self, item_id: str) -> Optional[Pattern]:
        doc = self.collection.find_one({"id": item_id}, {"_id": 0})
        if doc is None:
            return None
        return Pattern(**doc)

    def item_exists(self, item_id: str) -> bool:
        return self.collection.count_documents({"id": item_id}, limit=1) > 0

    def list_items(self, difficulty: Optional[str] = None) -> List[Pattern]:
        q = {"difficulty": difficulty} if difficulty else {}
        return [Pattern(**doc) for doc in self.collection.find(q, {"_id": 0})]

    def list_item_ids(self) -> List[str]:
        return [doc["id"] for doc in self.collection.find({}, {"id": 1})]
