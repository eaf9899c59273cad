"""
Progress tracking for quiz answers

record_answer() holds the rules for a single submission: duplicate rejection,
correctness, daily streak, aggregate counters and topic progress. It only
touches an in-memory User. ProgressTracker wires it to the user and content
stores so that the whole user update is persisted with one conditional write.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Callable, Dict, List, Mapping, Optional

from schemas import OPTIONS, QUIZ_TYPES, QuizAnswer, TopicProgress, User, UserStats

logger = logging.getLogger(__name__)

POINTS_PER_CORRECT = 10
POINTS_PER_STREAK_DAY = 5


class TrackerError(Exception):
    pass


class DuplicateAnswer(TrackerError):
    """The user already answered this (question, quiz type) pair."""


class NotFound(TrackerError):
    """Unknown user or question."""


class ConflictError(TrackerError):
    """A concurrent write changed the user record first."""


class ValidationError(TrackerError):
    """Malformed option, quiz type or timing."""


@dataclass
class QuestionKey:
    question_id: str
    quiz_type: str
    correct_option: str
    explanation: Optional[str] = None
    topic_id: Optional[str] = None
    topic_name: Optional[str] = None


@dataclass
class SubmissionResult:
    answer: QuizAnswer
    correct_option: str
    explanation: Optional[str]
    stats: UserStats

    @property
    def is_correct(self) -> bool:
        return self.answer.is_correct


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_day(value: Optional[datetime]) -> Optional[date]:
    """Truncate to a UTC calendar day. Naive values are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.date()


def validate_answer(answer: str, quiz_type: str, time_taken: int = 0):
    if answer not in OPTIONS:
        raise ValidationError(f"Answer must be one of {', '.join(OPTIONS)}")
    if quiz_type not in QUIZ_TYPES:
        raise ValidationError(f"Quiz type must be one of {', '.join(QUIZ_TYPES)}")
    if time_taken is None or time_taken < 0:
        raise ValidationError("time_taken must be a non-negative number of seconds")


def has_answered(user: User, question_id: str, quiz_type: str) -> bool:
    return any(a.question_id == question_id and a.type == quiz_type for a in user.quiz_answers)


def update_streak(stats: UserStats, now: datetime):
    today = to_day(now)
    last = to_day(stats.last_answered_date)

    if last is None:
        stats.daily_streak = 1
    else:
        days_diff = (today - last).days
        if days_diff == 1:
            stats.daily_streak += 1
        elif days_diff > 1:
            stats.daily_streak = 1
        # same day: already counted

    stats.longest_streak = max(stats.longest_streak, stats.daily_streak)
    stats.last_answered_date = now


def recompute_totals(user: User):
    stats = user.stats
    stats.total_questions_answered = len(user.quiz_answers)
    stats.correct_answers = sum(1 for a in user.quiz_answers if a.is_correct)
    stats.total_time_spent = sum(a.time_taken or 0 for a in user.quiz_answers)


def update_topic_progress(stats: UserStats, topic_id: str, topic_name: Optional[str],
                          is_correct: bool, now: datetime) -> TopicProgress:
    for progress in stats.topic_progress:
        if progress.topic_id == topic_id:
            progress.questions_answered += 1
            if is_correct:
                progress.correct_answers += 1
            progress.last_answered = now
            if topic_name and not progress.topic_name:
                progress.topic_name = topic_name
            return progress

    progress = TopicProgress(
        topic_id=topic_id,
        topic_name=topic_name,
        questions_answered=1,
        correct_answers=1 if is_correct else 0,
        last_answered=now,
    )
    stats.topic_progress.append(progress)
    return progress


def record_answer(user: User, question_id: str, answer: str, quiz_type: str, time_taken: int,
                  correct_option: str, topic_id: Optional[str] = None,
                  topic_name: Optional[str] = None, now: Optional[datetime] = None) -> QuizAnswer:
    """Apply one submission to ``user`` in place and return the new answer.

    Raises DuplicateAnswer without modifying the user when the same question
    was already answered in the same quiz type.
    """
    validate_answer(answer, quiz_type, time_taken)
    if has_answered(user, question_id, quiz_type):
        raise DuplicateAnswer("Question already answered")

    now = now or _utcnow()
    is_correct = answer == correct_option
    record = QuizAnswer(
        question_id=question_id,
        answer=answer,
        type=quiz_type,
        is_correct=is_correct,
        answered_at=now,
        time_taken=time_taken,
    )
    user.quiz_answers.append(record)

    update_streak(user.stats, now)
    recompute_totals(user)

    if quiz_type != "daily" and topic_id:
        update_topic_progress(user.stats, topic_id, topic_name, is_correct, now)

    return record


def accuracy(stats: UserStats) -> int:
    if stats.total_questions_answered == 0:
        return 0
    return round(100 * stats.correct_answers / stats.total_questions_answered)


def topic_accuracy(progress: TopicProgress) -> int:
    if progress.questions_answered == 0:
        return 0
    return round(100 * progress.correct_answers / progress.questions_answered)


def avg_time_per_question(stats: UserStats) -> int:
    if stats.total_questions_answered == 0:
        return 0
    return round(stats.total_time_spent / stats.total_questions_answered)


def leaderboard_score(stats: UserStats) -> int:
    return stats.correct_answers * POINTS_PER_CORRECT + stats.daily_streak * POINTS_PER_STREAK_DAY


def _rank_key(stats: UserStats):
    return (leaderboard_score(stats), accuracy(stats), stats.total_questions_answered)


def _ranked(users: Mapping[str, User]):
    eligible = [
        (user_id, user) for user_id, user in users.items()
        if user.is_active and user.stats.total_questions_answered > 0
    ]
    # sorted() is stable, so equal keys keep store order
    return sorted(eligible, key=lambda item: _rank_key(item[1].stats), reverse=True)


def leaderboard(users: Mapping[str, User], limit: int = 10) -> List[Dict]:
    rows = []
    for user_id, user in _ranked(users)[:limit]:
        stats = user.stats
        rows.append({
            "user_id": user_id,
            "name": user.name,
            "score": leaderboard_score(stats),
            "accuracy": accuracy(stats),
            "total_answered": stats.total_questions_answered,
            "correct_answers": stats.correct_answers,
            "streak": stats.daily_streak,
            "longest_streak": stats.longest_streak,
        })
    return rows


def leaderboard_position(user: User, users: Mapping[str, User]) -> Optional[int]:
    """1-based rank of ``user`` among ``users``; ties share the better rank.

    None for inactive users and users without answers, who are not ranked.
    """
    if not user.is_active or user.stats.total_questions_answered == 0:
        return None
    key = _rank_key(user.stats)
    ahead = sum(1 for _, other in _ranked(users) if _rank_key(other.stats) > key)
    return ahead + 1


def topic_leaderboard(topic_id: str, users: Mapping[str, User], limit: int = 10) -> List[Dict]:
    rows = []
    for user_id, user in users.items():
        if not user.is_active:
            continue
        for progress in user.stats.topic_progress:
            if progress.topic_id == topic_id:
                rows.append({
                    "user_id": user_id,
                    "name": user.name,
                    "questions_answered": progress.questions_answered,
                    "correct_answers": progress.correct_answers,
                    "accuracy": topic_accuracy(progress),
                })
                break
    rows.sort(key=lambda r: (r["correct_answers"], r["accuracy"]), reverse=True)
    return rows[:limit]


class ProgressTracker:
    """Records answers against the user and content stores."""

    def __init__(self, users, content, clock: Callable[[], datetime] = _utcnow):
        self.users = users
        self.content = content
        self.clock = clock

    def submit_answer(self, user_id: str, question_id: str, answer: str, quiz_type: str,
                      time_taken: int = 0) -> SubmissionResult:
        validate_answer(answer, quiz_type, time_taken)

        user = self.users.load_user(user_id)
        if has_answered(user, question_id, quiz_type):
            raise DuplicateAnswer("Question already answered")

        key = self.content.lookup_correct_option(question_id, quiz_type)
        expected_revision = user.revision
        record = record_answer(
            user, question_id, answer, quiz_type, time_taken, key.correct_option,
            topic_id=key.topic_id, topic_name=key.topic_name, now=self.clock(),
        )

        try:
            self.users.save_user(user_id, user, expected_revision, record)
        except ConflictError:
            latest = self.users.load_user(user_id)
            if has_answered(latest, question_id, quiz_type):
                logger.info("Concurrent duplicate answer for user %s question %s", user_id, question_id)
                raise DuplicateAnswer("Question already answered")
            raise

        try:
            self.content.increment_question_stats(question_id, quiz_type, record.is_correct, time_taken)
        except NotFound:
            # the answer is already saved; question stats are informational
            logger.warning("Question %s disappeared before its stats were updated", question_id)
        logger.info(
            "User %s answered %s question %s (%s); streak=%d",
            user_id, quiz_type, question_id, "correct" if record.is_correct else "wrong",
            user.stats.daily_streak,
        )
        return SubmissionResult(
            answer=record,
            correct_option=key.correct_option,
            explanation=key.explanation,
            stats=user.stats,
        )
