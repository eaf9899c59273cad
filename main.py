import logging
import os
import re
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Callable, List, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, EmailStr, Field

import analytics
from database import Database
from schemas import DailyQuiz, Difficulty, Option, Question, QuizType, Topic, User
from stores import ContentStore, UserStore, sanitize, to_oid
from tracker import (
    ConflictError,
    DuplicateAnswer,
    NotFound,
    ProgressTracker,
    ValidationError,
    leaderboard,
    leaderboard_position,
    leaderboard_score,
    topic_leaderboard,
)

logger = logging.getLogger(__name__)

HIDDEN_FIELDS = ("correct_option", "explanation")


def _now():
    return datetime.now(timezone.utc)


def create_app(database: Optional[Database] = None, clock: Callable[[], datetime] = _now) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        db = database if database is not None else Database.from_env()
        app.state.database = db
        if db is not None:
            try:
                db.ensure_indexes()
            except Exception:
                logger.exception("Could not create indexes")
        yield
        if db is not None:
            db.close()
        app.state.database = None

    app = FastAPI(title="QuizDaily API", lifespan=lifespan)
    app.state.database = None
    app.state.clock = clock

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router)
    return app


# ---------- Dependencies ----------

def get_database(request: Request) -> Database:
    db = request.app.state.database
    if db is None:
        raise HTTPException(status_code=500, detail="Database not configured")
    return db


def get_users(db: Database = Depends(get_database)) -> UserStore:
    return UserStore(db)


def get_content(db: Database = Depends(get_database)) -> ContentStore:
    return ContentStore(db)


def get_tracker(request: Request, users: UserStore = Depends(get_users),
                content: ContentStore = Depends(get_content)) -> ProgressTracker:
    return ProgressTracker(users, content, clock=request.app.state.clock)


def _hide_answers(doc: dict) -> dict:
    d = sanitize(doc)
    for field in HIDDEN_FIELDS:
        d.pop(field, None)
    return d


def _load_user(users: UserStore, user_id: str) -> User:
    try:
        return users.load_user(user_id)
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))


# ---------- Routes ----------


router = APIRouter()


@router.get("/")
def read_root():
    return {"message": "QuizDaily Backend is running"}


@router.get("/test")
def test_database(request: Request):
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": []
    }
    db = request.app.state.database
    if db is None:
        response["database"] = "⚠️ Available but not initialized"
        return response

    response["database"] = "✅ Available"
    response["database_name"] = db.name
    response["connection_status"] = "Connected"
    try:
        response["collections"] = db.list_collection_names()[:10]
        response["database"] = "✅ Connected & Working"
    except Exception as e:
        logger.warning("Database health check failed: %s", e)
        response["database"] = f"⚠️ Connected but Error: {str(e)[:80]}"
    return response


# ---------- Users ----------

class UpsertUser(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    email: EmailStr


@router.post("/api/users")
def create_or_get_user(payload: UpsertUser, db: Database = Depends(get_database),
                       users: UserStore = Depends(get_users)):
    doc = users.find_by_email(payload.email)
    if doc:
        return {"ok": True, "user": sanitize(doc)}
    user = User(name=payload.name, email=payload.email)
    _id = db.create_document("user", user)
    logger.info("Created user %s", _id)
    created = users.collection.find_one({"_id": to_oid(_id)})
    return {"ok": True, "user": sanitize(created)}


@router.get("/api/users/{user_id}")
def get_user(user_id: str, users: UserStore = Depends(get_users)):
    user = _load_user(users, user_id)
    return {"ok": True, "user": {"id": user_id, **user.model_dump()}}


@router.delete("/api/users/{user_id}")
def delete_user(user_id: str, users: UserStore = Depends(get_users)):
    try:
        users.delete_user(user_id)
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    logger.info("Deleted user %s", user_id)
    return {"ok": True}


# ---------- Quiz ----------

class AnswerPayload(BaseModel):
    user_id: str
    question_id: str
    answer: Option
    type: QuizType
    time_taken: int = Field(0, ge=0)


@router.get("/api/quiz/daily")
def daily_quiz(content: ContentStore = Depends(get_content)):
    doc = content.latest_daily_quiz()
    if not doc:
        raise HTTPException(status_code=404, detail="No daily quiz available")
    return {"ok": True, "quiz": _hide_answers(doc)}


@router.get("/api/quiz/topics")
def list_topics(content: ContentStore = Depends(get_content)):
    return {"ok": True, "topics": [sanitize(t) for t in content.list_topics()]}


@router.get("/api/quiz/topic/{topic_id}")
def get_topic(topic_id: str, content: ContentStore = Depends(get_content)):
    try:
        topic = content.get_topic(topic_id)
    except NotFound:
        topic = None
    if not topic:
        raise HTTPException(status_code=404, detail="Topic not found")
    questions = [_hide_answers(q) for q in content.topic_questions(topic_id)]
    return {"ok": True, "topic": sanitize(topic), "questions": questions}


@router.post("/api/quiz/answer")
def submit_answer(payload: AnswerPayload, tracker: ProgressTracker = Depends(get_tracker)):
    for attempt in (1, 2):
        try:
            result = tracker.submit_answer(
                payload.user_id, payload.question_id, payload.answer, payload.type, payload.time_taken,
            )
            break
        except DuplicateAnswer as e:
            raise HTTPException(status_code=409, detail=str(e))
        except NotFound as e:
            raise HTTPException(status_code=404, detail=str(e))
        except ValidationError as e:
            raise HTTPException(status_code=422, detail=str(e))
        except ConflictError as e:
            if attempt == 2:
                raise HTTPException(status_code=409, detail=str(e))
            logger.info("Retrying answer submission for user %s after conflict", payload.user_id)

    return {
        "ok": True,
        "is_correct": result.is_correct,
        "correct_option": result.correct_option,
        "explanation": result.explanation,
        "stats": result.stats.model_dump(),
    }


@router.get("/api/quiz/user-answer")
def get_user_answer(user_id: str, question_id: str, type: QuizType,
                    users: UserStore = Depends(get_users)):
    try:
        answer = users.find_answer(user_id, question_id, type)
    except NotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    if answer is None:
        raise HTTPException(status_code=404, detail="Answer not found")
    return {"ok": True, "answer": answer.answer, "is_correct": answer.is_correct}


# ---------- Analytics ----------

@router.get("/api/analytics/user/{user_id}")
def user_analytics(user_id: str, request: Request, users: UserStore = Depends(get_users),
                   content: ContentStore = Depends(get_content)):
    user = _load_user(users, user_id)
    data = analytics.user_analytics(
        user, request.app.state.clock(),
        topic_names=content.topic_names(),
        topic_totals=content.topic_question_counts(),
    )
    data["rank"] = leaderboard_position(user, users.active_users())
    return data


@router.get("/api/analytics/leaderboard")
def global_leaderboard(limit: int = Query(10, ge=1, le=100), user_id: Optional[str] = None,
                       users: UserStore = Depends(get_users)):
    ranked = users.active_users()
    response = {"leaderboard": leaderboard(ranked, limit)}
    if user_id:
        user = _load_user(users, user_id)
        response["user_position"] = leaderboard_position(user, ranked)
        response["user_score"] = leaderboard_score(user.stats)
    return response


@router.get("/api/analytics/leaderboard/topic/{topic_id}")
def topic_ranking(topic_id: str, limit: int = Query(10, ge=1, le=100), users: UserStore = Depends(get_users)):
    return {"leaderboard": topic_leaderboard(topic_id, users.users_with_topic(topic_id), limit)}


@router.get("/api/analytics/weekly-summary/{user_id}")
def weekly_summary(user_id: str, request: Request, users: UserStore = Depends(get_users)):
    user = _load_user(users, user_id)
    return analytics.weekly_summary(user, request.app.state.clock())


# ---------- Admin content ----------

class CreateTopic(BaseModel):
    name: str = Field(..., min_length=3, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    icon: str = "📚"
    order: int = Field(0, ge=0)


class CreateQuestion(BaseModel):
    question: str = Field(..., min_length=10, max_length=500)
    option_a: str
    option_b: str
    option_c: str
    option_d: str
    correct_option: Option
    explanation: Optional[str] = Field(None, max_length=1000)
    difficulty: Difficulty = "medium"
    tags: List[str] = []


class CreateDailyQuiz(BaseModel):
    question: str
    option_a: str
    option_b: str
    option_c: str
    option_d: str
    correct_option: Option
    explanation: Optional[str] = None
    difficulty: Difficulty = "medium"


def slugify(name: str) -> str:
    slug = re.sub(r"\s+", "-", name.strip().lower())
    return re.sub(r"[^\w-]", "", slug)


@router.post("/api/admin/topics")
def create_topic(payload: CreateTopic, db: Database = Depends(get_database)):
    slug = slugify(payload.name)
    if db.collection("topic").find_one({"slug": slug}):
        raise HTTPException(status_code=400, detail="Topic with this name already exists")
    _id = db.create_document("topic", Topic(slug=slug, **payload.model_dump()))
    return {"ok": True, "id": _id, "slug": slug}


@router.post("/api/admin/topics/{topic_id}/questions")
def add_question(topic_id: str, payload: CreateQuestion, db: Database = Depends(get_database),
                 content: ContentStore = Depends(get_content)):
    try:
        topic = content.get_topic(topic_id)
    except NotFound:
        topic = None
    if not topic:
        raise HTTPException(status_code=404, detail="Topic not found")
    _id = db.create_document("question", Question(topic_id=topic_id, **payload.model_dump()))
    return {"ok": True, "id": _id}


@router.post("/api/admin/daily-quiz")
def create_daily_quiz(payload: CreateDailyQuiz, db: Database = Depends(get_database)):
    _id = db.create_document("dailyquiz", DailyQuiz(**payload.model_dump()))
    return {"ok": True, "id": _id}


app = create_app()


if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
