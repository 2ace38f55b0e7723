import logging
import os
import re
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, StrictBool

import database
from errors import ConcurrencyConflict, InvalidInput, NotFound
from schemas import (
    Difficulty,
    MasteryOverview,
    MasteryRecord,
    Pattern,
    PatternDetail,
    PracticeMode,
    PracticeSession,
    QuizMode,
    QuizQuestion,
)
from service import MasteryService
from store import MongoCatalog, MongoMasteryStore

logger = logging.getLogger(__name__)

app = FastAPI(title="Pattern Mastery API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Dependencies
def get_database():
    if database.db is None:
        raise HTTPException(status_code=503, detail="Database not configured")
    return database.db


def get_service(db=Depends(get_database)) -> MasteryService:
    return MasteryService(MongoMasteryStore(db), MongoCatalog(db))


# Error translation
@app.exception_handler(NotFound)
async def not_found_handler(request: Request, exc: NotFound):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(InvalidInput)
async def invalid_input_handler(request: Request, exc: InvalidInput):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(ConcurrencyConflict)
async def conflict_handler(request: Request, exc: ConcurrencyConflict):
    logger.warning("Giving up after write conflicts: %s", exc)
    return JSONResponse(status_code=409, content={"detail": str(exc)})


# Request bodies
class AnswerSubmission(BaseModel):
    user_id: str
    item_id: str
    is_correct: StrictBool
    time_taken_seconds: int
    hints_used: int = 0


class QuizSubmission(BaseModel):
    user_id: str
    item_id: str
    selected_index: int
    time_taken_seconds: int
    question_type: str = "identify"
    difficulty_level: Difficulty = "beginner"
    hints_used: int = 0


class QuizResult(BaseModel):
    is_correct: bool
    explanation: str
    correct_index: int
    mastery: MasteryRecord


@app.get("/")
def root():
    return {"message": "Pattern Mastery Backend Running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": []
    }
    try:
        if database.db is not None:
            response["database"] = "✅ Connected & Working"
            response["database_name"] = database.db.name
            response["connection_status"] = "Connected"
            response["collections"] = database.db.list_collection_names()[:10]
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:80]}"
    return response


# Pattern catalog
@app.post("/api/patterns")
def create_pattern(pattern: Pattern, db=Depends(get_database)):
    if db["pattern"].count_documents({"id": pattern.id}, limit=1):
        raise HTTPException(status_code=409, detail="Pattern already exists")
    database.create_document("pattern", pattern, database=db)
    return {"id": pattern.id}


@app.get("/api/patterns")
def list_patterns(
    difficulty: Optional[Difficulty] = None,
    category: Optional[str] = None,
    search: Optional[str] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db=Depends(get_database),
):
    q = {}
    if difficulty:
        q["difficulty"] = difficulty
    if category:
        q["category"] = category
    if search:
        pattern = {"$regex": re.escape(search), "$options": "i"}
        q["$or"] = [{"name": pattern}, {"meaning": pattern}]
    items = database.get_documents("pattern", q, limit=limit, skip=offset, database=db)
    for it in items:
        it.pop("_id", None)
    return items


@app.get("/api/patterns/learning-path", response_model=List[Pattern])
def learning_path(service: MasteryService = Depends(get_service)):
    return service.learning_path()


@app.get("/api/patterns/{pattern_id}", response_model=PatternDetail)
def get_pattern(
    pattern_id: str,
    user_id: Optional[str] = None,
    service: MasteryService = Depends(get_service),
):
    return service.get_pattern(pattern_id, user_id)


# Mastery
@app.post("/api/mastery/answer", response_model=MasteryRecord)
def submit_answer(payload: AnswerSubmission, service: MasteryService = Depends(get_service)):
    return service.submit_answer(
        user_id=payload.user_id,
        item_id=payload.item_id,
        is_correct=payload.is_correct,
        time_taken_seconds=payload.time_taken_seconds,
        hints_used=payload.hints_used,
    )


@app.get("/api/mastery/overview", response_model=MasteryOverview)
def mastery_overview(user_id: str, service: MasteryService = Depends(get_service)):
    return service.get_overview(user_id)


@app.get("/api/mastery/due", response_model=List[str])
def due_items(user_id: str, service: MasteryService = Depends(get_service)):
    return service.get_due_items(user_id)


@app.get("/api/mastery/{item_id}", response_model=MasteryRecord)
def get_record(item_id: str, user_id: str, service: MasteryService = Depends(get_service)):
    return service.get_record(user_id, item_id)


# Quiz
@app.get("/api/quiz/generate", response_model=List[QuizQuestion])
def generate_quiz(
    user_id: str,
    difficulty: Optional[Difficulty] = None,
    mode: QuizMode = "adaptive",
    count: int = Query(5, ge=1, le=20),
    service: MasteryService = Depends(get_service),
):
    return service.generate_quiz(user_id, difficulty=difficulty, mode=mode, count=count)


@app.post("/api/quiz/submit", response_model=QuizResult)
def submit_quiz(payload: QuizSubmission, service: MasteryService = Depends(get_service)):
    return service.submit_quiz_answer(
        user_id=payload.user_id,
        item_id=payload.item_id,
        selected_index=payload.selected_index,
        time_taken_seconds=payload.time_taken_seconds,
        question_type=payload.question_type,
        difficulty_level=payload.difficulty_level,
        hints_used=payload.hints_used,
    )


# Practice
@app.get("/api/practice/generate", response_model=List[str])
def generate_practice(
    user_id: str,
    mode: PracticeMode = "endless",
    count: int = 10,
    service: MasteryService = Depends(get_service),
):
    return service.practice_set(user_id, mode, count)


@app.post("/api/practice/sessions")
def save_practice_session(session: PracticeSession, db=Depends(get_database)):
    session_id = database.create_document("practicesession", session, database=db)
    return {"id": session_id}


@app.get("/api/practice/sessions")
def list_practice_sessions(user_id: Optional[str] = None, db=Depends(get_database)):
    q = {"user_id": user_id} if user_id else {}
    items = database.get_documents("practicesession", q, database=db)
    for it in items:
        it["id"] = str(it.pop("_id"))
    return items


if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
