"""
Application service: the operations callers use to record answers and read
mastery state. Validation happens here; the engine assumes clean input.
"""
import logging
import os
from datetime import datetime
from typing import List, Optional

import analytics
import engine
from errors import ConcurrencyConflict, InvalidInput, NotFound
from schemas import (
    DIFFICULTY_RANK,
    AnswerOutcome,
    MasteryOverview,
    MasteryRecord,
    Pattern,
    PatternDetail,
    QuizAttempt,
    QuizQuestion,
    utcnow,
)
from store import Catalog, MasteryStore

logger = logging.getLogger(__name__)

PRACTICE_MODES = ("endless", "timed", "mistakes", "weak_set")
QUIZ_MODES = ("adaptive", "focused")
MAX_QUIZ_QUESTIONS = 20
PLACEHOLDER_OPTIONS = ("Option A", "Option B", "Option C", "Option D")


class MasteryService:
    def __init__(
        self,
        store: MasteryStore,
        catalog: Catalog,
        write_retries: Optional[int] = None,
    ) -> None:
        self.store = store
        self.catalog = catalog
        if write_retries is None:
            write_retries = int(os.getenv("MASTERY_WRITE_RETRIES", "3"))
        self.write_retries = max(1, write_retries)

    # ------------------------------------------------------------------
    # Writes

    def submit_answer(
        self,
        user_id: str,
        item_id: str,
        is_correct: bool,
        time_taken_seconds: int,
        hints_used: int = 0,
        now: Optional[datetime] = None,
    ) -> MasteryRecord:
        """Apply one answer to the stored record and persist the result."""
        outcome = self._validated_outcome(
            user_id, item_id, is_correct, time_taken_seconds, hints_used
        )
        return self._apply(outcome, now or utcnow())

    def submit_quiz_answer(
        self,
        user_id: str,
        item_id: str,
        selected_index: int,
        time_taken_seconds: int,
        question_type: str = "identify",
        difficulty_level: str = "beginner",
        hints_used: int = 0,
        now: Optional[datetime] = None,
    ) -> dict:
        """Grade a quick-test answer, update mastery and log the attempt."""
        self._require_ids(user_id, item_id)
        pattern = self.catalog.get_item(item_id)
        if pattern is None:
            raise NotFound(f"Pattern {item_id} not found")
        quick_test = pattern.quick_test
        if quick_test is None:
            raise InvalidInput(f"Pattern {item_id} has no quick test")
        if not 0 <= selected_index < len(quick_test.options):
            raise InvalidInput(f"selected_index {selected_index} is out of range")

        is_correct = selected_index == quick_test.correct_index
        outcome = self._validated_outcome(
            user_id, item_id, is_correct, time_taken_seconds, hints_used
        )
        now = now or utcnow()
        record = self._apply(outcome, now)
        attempt = QuizAttempt(
            user_id=user_id,
            item_id=item_id,
            question_type=question_type,
            difficulty_level=difficulty_level,
            is_correct=is_correct,
            time_taken_seconds=time_taken_seconds,
            hints_used=hints_used,
            created_at=now,
        )
        # best effort: the mastery write has already committed
        try:
            self.store.record_attempt(attempt)
        except Exception:
            logger.exception(
                "Could not log quiz attempt user=%s item=%s", user_id, item_id
            )
        return {
            "is_correct": is_correct,
            "explanation": quick_test.explanation or "No explanation available",
            "correct_index": quick_test.correct_index,
            "mastery": record,
        }

    def _apply(self, outcome: AnswerOutcome, now: datetime) -> MasteryRecord:
        attempt = 1
        while True:
            existing = self.store.get(outcome.user_id, outcome.item_id)
            record = engine.apply(existing, outcome, now)
            try:
                self.store.upsert(record, existing.version if existing else None)
                break
            except ConcurrencyConflict:
                if attempt >= self.write_retries:
                    raise
                logger.warning(
                    "Write conflict on (%s, %s), retrying (%d/%d)",
                    outcome.user_id, outcome.item_id, attempt, self.write_retries,
                )
                attempt += 1
        logger.info(
            "Answer applied user=%s item=%s correct=%s status=%s interval=%d",
            outcome.user_id, outcome.item_id, outcome.is_correct,
            record.status, record.interval_days,
        )
        return record

    # ------------------------------------------------------------------
    # Reads

    def get_record(self, user_id: str, item_id: str) -> MasteryRecord:
        record = self.store.get(user_id, item_id)
        if record is None:
            raise NotFound(f"No mastery record for user {user_id} and item {item_id}")
        return record

    def get_overview(self, user_id: str, now: Optional[datetime] = None) -> MasteryOverview:
        now = now or utcnow()
        records = self.store.list_for_user(user_id)
        return MasteryOverview(
            overall_mastery_percentage=analytics.overall_mastery(records),
            current_streak_days=analytics.current_streak(records, now),
            problematic_item_ids=analytics.problematic_items(records, now),
        )

    def get_due_items(self, user_id: str, now: Optional[datetime] = None) -> List[str]:
        return analytics.due_items(self.store.list_for_user(user_id), now or utcnow())

    def practice_set(self, user_id: str, mode: str = "endless", count: int = 10) -> List[str]:
        if mode not in PRACTICE_MODES:
            raise InvalidInput(f"Invalid practice mode {mode!r}")
        if count < 1:
            raise InvalidInput("count must be positive")
        catalog_ids = self.catalog.list_item_ids()
        if mode == "weak_set":
            return analytics.weak_items(self.store.list_for_user(user_id), count, catalog_ids)
        if mode == "mistakes":
            return analytics.mistake_items(self.store.list_for_user(user_id), count, catalog_ids)
        return catalog_ids[:count]

    # ------------------------------------------------------------------
    # Catalog

    def get_pattern(self, item_id: str, user_id: Optional[str] = None) -> PatternDetail:
        pattern = self.catalog.get_item(item_id)
        if pattern is None:
            raise NotFound(f"Pattern {item_id} not found")
        mastery = self.store.get(user_id, item_id) if user_id else None
        return PatternDetail(**pattern.model_dump(), mastery=mastery)

    def learning_path(self) -> List[Pattern]:
        """Catalog ordered beginner, intermediate, advanced; stable within a level."""
        return sorted(self.catalog.list_items(), key=lambda p: DIFFICULTY_RANK[p.difficulty])

    def generate_quiz(
        self,
        user_id: str,
        difficulty: Optional[str] = None,
        mode: str = "adaptive",
        count: int = 5,
        now: Optional[datetime] = None,
    ) -> List[QuizQuestion]:
        """
        Build quiz questions from the catalog's quick tests.

        ``focused`` puts the user's problematic patterns first. The answer
        key never leaves the server; ``submit_quiz_answer`` grades against it.
        """
        if not isinstance(user_id, str) or not user_id.strip():
            raise InvalidInput("user_id is required")
        if mode not in QUIZ_MODES:
            raise InvalidInput(f"Invalid quiz mode {mode!r}")
        if not 1 <= count <= MAX_QUIZ_QUESTIONS:
            raise InvalidInput(f"count must be between 1 and {MAX_QUIZ_QUESTIONS}")
        if difficulty is not None and difficulty not in DIFFICULTY_RANK:
            raise InvalidInput(f"Invalid difficulty {difficulty!r}")

        patterns = self.catalog.list_items(difficulty)
        if mode == "focused":
            records = self.store.list_for_user(user_id)
            priority = {
                item_id: rank
                for rank, item_id in enumerate(analytics.problematic_items(records, now or utcnow()))
            }
            patterns.sort(key=lambda p: priority.get(p.id, len(priority)))

        questions = []
        for pattern in patterns[:count]:
            quick_test = pattern.quick_test
            questions.append(
                QuizQuestion(
                    item_id=pattern.id,
                    pattern_name=pattern.name,
                    question=quick_test.question if quick_test
                    else f'Identify the candlestick pattern "{pattern.name}"',
                    options=quick_test.options if quick_test else list(PLACEHOLDER_OPTIONS),
                    difficulty=pattern.difficulty,
                    mode=mode,
                )
            )
        return questions

    # ------------------------------------------------------------------

    def _require_ids(self, user_id: str, item_id: str) -> None:
        if not isinstance(user_id, str) or not user_id.strip():
            raise InvalidInput("user_id is required")
        if not isinstance(item_id, str) or not item_id.strip():
            raise InvalidInput("item_id is required")

    def _validated_outcome(
        self,
        user_id: str,
        item_id: str,
        is_correct: bool,
        time_taken_seconds: int,
        hints_used: int,
    ) -> AnswerOutcome:
        self._require_ids(user_id, item_id)
        if not isinstance(is_correct, bool):
            raise InvalidInput("is_correct must be a boolean")
        if isinstance(time_taken_seconds, bool) or not isinstance(time_taken_seconds, int):
            raise InvalidInput("time_taken_seconds must be an integer")
        if time_taken_seconds <= 0:
            raise InvalidInput("time_taken_seconds must be positive")
        if hints_used < 0:
            raise InvalidInput("hints_used cannot be negative")
        if not self.catalog.item_exists(item_id):
            raise NotFound(f"Pattern {item_id} not found")
        return AnswerOutcome(
            user_id=user_id,
            item_id=item_id,
            is_correct=is_correct,
            time_taken_seconds=time_taken_seconds,
            hints_used=hints_used,
        )
