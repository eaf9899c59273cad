from datetime import datetime, timedelta, timezone

from analytics import achievements, activity_data, user_analytics, weekly_summary
from schemas import QuizAnswer, TopicProgress, User, UserStats

NOW = datetime(2024, 3, 31, 12, 0, tzinfo=timezone.utc)


def _answer(qid, days_ago, correct=True, time_taken=10):
    return QuizAnswer(question_id=qid, answer="A", type="daily", is_correct=correct,
                      answered_at=NOW - timedelta(days=days_ago), time_taken=time_taken)


def test_activity_data_counts_per_day_oldest_first():
    answers = [_answer("q1", 0), _answer("q2", 0), _answer("q3", 29), _answer("q4", 30)]
    data = activity_data(answers, NOW)

    assert len(data) == 30
    assert data[-1] == 2
    assert data[0] == 1
    assert sum(data) == 3


def test_achievements_unlock():
    stats = UserStats(total_questions_answered=12, correct_answers=11, daily_streak=7)
    unlocked = {a["id"] for a in achievements(stats) if a["unlocked"]}

    assert unlocked == {"first_answer", "ten_correct", "streak_3", "streak_7", "accuracy_80", "accuracy_90"}


def test_weekly_summary():
    user = User(name="Ada Lovelace", email="ada@example.com",
                quiz_answers=[_answer("q1", 1, time_taken=20), _answer("q2", 3, correct=False),
                              _answer("q3", 10)])
    summary = weekly_summary(user, NOW)

    assert summary == {
        "questions_answered": 2,
        "correct_answers": 1,
        "accuracy": 50,
        "average_time": 15,
        "streak_maintained": False,
        "topics_explored": 2,
    }


def test_weekly_summary_empty():
    summary = weekly_summary(User(name="Ada Lovelace", email="ada@example.com"), NOW)
    assert summary["accuracy"] == 0
    assert summary["average_time"] == 0


def test_user_analytics_topic_names_and_totals():
    stats = UserStats(total_questions_answered=4, correct_answers=3, total_time_spent=50,
                      topic_progress=[TopicProgress(topic_id="t1", topic_name="Old name",
                                                    questions_answered=4, correct_answers=3)])
    user = User(name="Ada Lovelace", email="ada@example.com", stats=stats)
    data = user_analytics(user, NOW, topic_names={"t1": "Chemistry"}, topic_totals={"t1": 20})

    assert data["accuracy"] == 75
    assert data["avg_time_per_question"] == 12
    assert data["topic_progress"] == [
        {"topic_id": "t1", "name": "Chemistry", "answered": 4, "correct": 3, "total": 20, "accuracy": 75}
    ]
    assert len(data["achievements"]) == 10
