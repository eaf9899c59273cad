"""
Database Schemas for QuizDaily

Each Pydantic model corresponds to a MongoDB collection. The collection name
is the lowercase of the class name. Example: DailyQuiz -> "dailyquiz".
Embedded models (QuizAnswer, UserStats, TopicProgress, QuestionStats) live
inside their owning document and have no collection of their own.
"""

from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

Option = Literal["A", "B", "C", "D"]
QuizType = Literal["daily", "competitive"]
Difficulty = Literal["easy", "medium", "hard"]

OPTIONS = ("A", "B", "C", "D")
QUIZ_TYPES = ("daily", "competitive")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class QuizAnswer(BaseModel):
    """One response to a question; never edited after creation"""
    question_id: str = Field(..., description="Answered question id")
    answer: Option = Field(..., description="Chosen option")
    type: QuizType = Field(..., description="Quiz the question belongs to")
    is_correct: bool = Field(..., description="Whether the chosen option was correct")
    answered_at: datetime = Field(default_factory=_utcnow)
    time_taken: int = Field(0, ge=0, description="Seconds spent on the question")


class TopicProgress(BaseModel):
    """Running tally for one topic"""
    topic_id: str
    topic_name: Optional[str] = None
    questions_answered: int = Field(0, ge=0)
    correct_answers: int = Field(0, ge=0)
    last_answered: Optional[datetime] = None


class UserStats(BaseModel):
    total_questions_answered: int = Field(0, ge=0)
    correct_answers: int = Field(0, ge=0)
    daily_streak: int = Field(0, ge=0)
    longest_streak: int = Field(0, ge=0)
    last_answered_date: Optional[datetime] = None
    total_time_spent: int = Field(0, ge=0, description="Seconds")
    topic_progress: List[TopicProgress] = Field(default_factory=list)


class User(BaseModel):
    """User profile, answers and cumulative quiz stats"""
    name: str = Field(..., min_length=2, max_length=100, description="Full name")
    email: EmailStr = Field(..., description="Unique email address")
    is_active: bool = Field(True, description="Whether the user is active")
    revision: int = Field(0, ge=0, description="Bumped on every progress save")
    quiz_answers: List[QuizAnswer] = Field(default_factory=list)
    stats: UserStats = Field(default_factory=UserStats)

    @field_validator("email", mode="before")
    @classmethod
    def _lower_email(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value


class Topic(BaseModel):
    """Question bank grouping for competitive quizzes"""
    name: str = Field(..., min_length=3, max_length=100)
    slug: str = Field(..., description="URL-friendly unique identifier")
    description: Optional[str] = Field(None, max_length=500)
    icon: str = Field("📚")
    order: int = Field(0, ge=0)
    is_active: bool = True


class QuestionStats(BaseModel):
    times_answered: int = Field(0, ge=0)
    correct_count: int = Field(0, ge=0)
    avg_time_taken: int = Field(0, ge=0, description="Seconds, competitive only")


class Question(BaseModel):
    """Multiple choice question belonging to a topic"""
    topic_id: str = Field(..., description="Owning topic id")
    question: str = Field(..., min_length=10, max_length=500)
    option_a: str = Field(..., min_length=1, max_length=200)
    option_b: str = Field(..., min_length=1, max_length=200)
    option_c: str = Field(..., min_length=1, max_length=200)
    option_d: str = Field(..., min_length=1, max_length=200)
    correct_option: Option
    explanation: Optional[str] = Field(None, max_length=1000)
    difficulty: Difficulty = "medium"
    tags: List[str] = Field(default_factory=list)
    is_active: bool = True
    stats: QuestionStats = Field(default_factory=QuestionStats)


class DailyQuiz(BaseModel):
    """Question of the day"""
    question: str = Field(..., min_length=1)
    option_a: str
    option_b: str
    option_c: str
    option_d: str
    correct_option: Option
    explanation: Optional[str] = None
    difficulty: Difficulty = "medium"
    date: datetime = Field(
        default_factory=lambda: _utcnow().replace(hour=0, minute=0, second=0, microsecond=0)
    )
    stats: QuestionStats = Field(default_factory=QuestionStats)
