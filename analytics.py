"""Read-side projections of a user's quiz history."""

from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from schemas import QuizAnswer, User, UserStats
from tracker import accuracy, avg_time_per_question, to_day, topic_accuracy

ACTIVITY_DAYS = 30
WEEK_DAYS = 7

# id, name, description, icon
BADGES = [
    ("first_answer", "First Steps", "Answer your first question", "🎯"),
    ("ten_correct", "Getting Started", "Answer 10 questions correctly", "⭐"),
    ("fifty_correct", "Knowledge Seeker", "Answer 50 questions correctly", "📚"),
    ("hundred_correct", "Expert", "Answer 100 questions correctly", "🏆"),
    ("streak_3", "Consistent Learner", "Maintain a 3-day streak", "🔥"),
    ("streak_7", "Week Warrior", "Maintain a 7-day streak", "💪"),
    ("streak_30", "Monthly Master", "Maintain a 30-day streak", "👑"),
    ("accuracy_80", "Sharp Mind", "Achieve 80% accuracy", "🎓"),
    ("accuracy_90", "Genius", "Achieve 90% accuracy", "🧠"),
    ("all_topics", "Well Rounded", "Answer questions in all topics", "🌟"),
]


def _unlocked(stats: UserStats) -> Dict[str, bool]:
    acc = accuracy(stats)
    return {
        "first_answer": stats.total_questions_answered >= 1,
        "ten_correct": stats.correct_answers >= 10,
        "fifty_correct": stats.correct_answers >= 50,
        "hundred_correct": stats.correct_answers >= 100,
        "streak_3": stats.daily_streak >= 3,
        "streak_7": stats.daily_streak >= 7,
        "streak_30": stats.daily_streak >= 30,
        "accuracy_80": acc >= 80,
        "accuracy_90": acc >= 90,
        "all_topics": len(stats.topic_progress) >= 5,
    }


def achievements(stats: UserStats) -> List[Dict]:
    unlocked = _unlocked(stats)
    return [
        {"id": badge_id, "name": name, "description": description, "icon": icon,
         "unlocked": unlocked[badge_id]}
        for badge_id, name, description, icon in BADGES
    ]


def activity_data(answers: List[QuizAnswer], now: datetime, days: int = ACTIVITY_DAYS) -> List[int]:
    """Answers per calendar day for the last ``days`` days, oldest first."""
    today = to_day(now)
    counts = [0] * days
    for answer in answers:
        days_ago = (today - to_day(answer.answered_at)).days
        if 0 <= days_ago < days:
            counts[days - 1 - days_ago] += 1
    return counts


def _after(value: datetime, cutoff: datetime) -> bool:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value >= cutoff


def weekly_summary(user: User, now: datetime) -> Dict:
    cutoff = now - timedelta(days=WEEK_DAYS)
    week = [a for a in user.quiz_answers if _after(a.answered_at, cutoff)]
    correct = sum(1 for a in week if a.is_correct)
    return {
        "questions_answered": len(week),
        "correct_answers": correct,
        "accuracy": round(100 * correct / len(week)) if week else 0,
        "average_time": round(sum(a.time_taken for a in week) / len(week)) if week else 0,
        "streak_maintained": user.stats.daily_streak >= WEEK_DAYS,
        "topics_explored": len({a.question_id for a in week}),
    }


def user_analytics(user: User, now: datetime, topic_names: Optional[Dict[str, str]] = None,
                   topic_totals: Optional[Dict[str, int]] = None) -> Dict:
    topic_names = topic_names or {}
    topic_totals = topic_totals or {}
    stats = user.stats

    topic_progress = []
    for tp in stats.topic_progress:
        topic_progress.append({
            "topic_id": tp.topic_id,
            "name": topic_names.get(tp.topic_id) or tp.topic_name,
            "answered": tp.questions_answered,
            "correct": tp.correct_answers,
            "total": topic_totals.get(tp.topic_id, tp.questions_answered),
            "accuracy": topic_accuracy(tp),
        })

    return {
        "accuracy": accuracy(stats),
        "total_questions": stats.total_questions_answered,
        "correct_answers": stats.correct_answers,
        "streak": stats.daily_streak,
        "longest_streak": stats.longest_streak,
        "time_spent": stats.total_time_spent,
        "avg_time_per_question": avg_time_per_question(stats),
        "topic_progress": topic_progress,
        "activity_data": activity_data(user.quiz_answers, now),
        "achievements": achievements(stats),
    }
