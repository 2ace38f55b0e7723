"""
Database Schemas for the Pattern Mastery Scheduler

Each Pydantic model represents a collection in MongoDB. The collection
name equals the lowercase class name.
"""
from pydantic import BaseModel, Field
from typing import Optional, List, Literal
from datetime import datetime, timezone

LearningStatus = Literal["new", "learning", "reviewing", "mastered"]
Difficulty = Literal["beginner", "intermediate", "advanced"]
PracticeMode = Literal["endless", "timed", "mistakes", "weak_set"]
QuizMode = Literal["adaptive", "focused"]

DIFFICULTY_RANK = {"beginner": 0, "intermediate": 1, "advanced": 2}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class QuickTest(BaseModel):
    question: str
    options: List[str]
    correct_index: int = Field(..., ge=0, description="Index into options")
    explanation: str = ""


class Pattern(BaseModel):
    id: str = Field(..., description="Stable catalog identifier, e.g. 'hammer'")
    name: str = Field(..., description="Display name")
    difficulty: Difficulty = "beginner"
    category: str = Field("neutral", description="bullish, bearish or neutral")
    meaning: str = Field("", description="Short summary of what the pattern signals")
    needs_confirmation: bool = False
    quick_test: Optional[QuickTest] = None


class MasteryRecord(BaseModel):
    user_id: str
    item_id: str
    status: LearningStatus = "new"
    times_seen: int = Field(0, ge=0)
    times_correct: int = Field(0, ge=0)
    times_incorrect: int = Field(0, ge=0)
    # Rolling estimate over a 10-attempt window; can exceed 100 past the window
    mastery_percentage: float = Field(0.0, ge=0)
    ease_factor: float = Field(2.5, ge=1.3, le=3.0)
    interval_days: int = Field(1, ge=1, description="Days until next review")
    due_at: datetime = Field(..., description="Next review timestamp (UTC)")
    streak_days: int = Field(0, ge=0, description="Consecutive correct answers")
    mistake_count_7days: int = Field(0, ge=0, description="Decaying mistake counter")
    recent_mistakes: List[datetime] = Field(
        default_factory=list, description="Most recent mistake timestamps (UTC), at most 5"
    )
    last_seen_at: datetime = Field(..., description="Last answer timestamp (UTC)")
    version: int = Field(0, ge=0, description="Optimistic concurrency counter")


class AnswerOutcome(BaseModel):
    user_id: str
    item_id: str
    is_correct: bool
    time_taken_seconds: int
    hints_used: int = 0


class QuizAttempt(BaseModel):
    user_id: str
    item_id: str
    question_type: str
    difficulty_level: Difficulty
    is_correct: bool
    time_taken_seconds: int
    hints_used: int = 0
    created_at: datetime = Field(default_factory=utcnow)


class PracticeSession(BaseModel):
    user_id: str
    mode: PracticeMode
    items_attempted: int = Field(..., ge=0)
    correct_count: int = Field(..., ge=0)
    incorrect_count: int = Field(..., ge=0)
    duration_seconds: int = Field(..., ge=0)
    created_at: datetime = Field(default_factory=utcnow)


class MasteryOverview(BaseModel):
    overall_mastery_percentage: int
    current_streak_days: int
    problematic_item_ids: List[str]


class QuizQuestion(BaseModel):
    item_id: str
    pattern_name: str
    question_type: str = "pattern_identification"
    question: str
    options: List[str]
    difficulty: Difficulty
    mode: QuizMode


class PatternDetail(Pattern):
    mastery: Optional[MasteryRecord] = None
