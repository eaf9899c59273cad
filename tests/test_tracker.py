from datetime import datetime, timedelta, timezone

import pytest

from schemas import User, UserStats, TopicProgress
from tracker import (
    DuplicateAnswer,
    ValidationError,
    accuracy,
    leaderboard,
    leaderboard_position,
    leaderboard_score,
    record_answer,
    topic_leaderboard,
    update_streak,
)

DAY1 = datetime(2024, 3, 4, 9, 0, tzinfo=timezone.utc)


def _user(name="Ada Lovelace", email="ada@example.com", **stats):
    return User(name=name, email=email, stats=UserStats(**stats))


def _answer(user, qid, chosen="A", correct="A", quiz_type="daily", now=DAY1, **kwargs):
    return record_answer(user, qid, chosen, quiz_type, kwargs.pop("time_taken", 10), correct, now=now, **kwargs)


class TestRecordAnswer:
    def test_first_correct_daily_answer(self):
        user = _user()
        record = _answer(user, "q1")

        assert record.is_correct
        assert user.stats.total_questions_answered == 1
        assert user.stats.correct_answers == 1
        assert user.stats.daily_streak == 1
        assert user.stats.longest_streak == 1
        assert user.stats.total_time_spent == 10
        assert user.stats.topic_progress == []

    def test_wrong_answer_counts_but_not_correct(self):
        user = _user()
        record = _answer(user, "q1", chosen="B", correct="C")

        assert not record.is_correct
        assert user.stats.total_questions_answered == 1
        assert user.stats.correct_answers == 0

    def test_duplicate_is_rejected_without_changes(self):
        user = _user()
        _answer(user, "q1")
        before = user.model_dump()

        with pytest.raises(DuplicateAnswer):
            _answer(user, "q1", chosen="B", now=DAY1 + timedelta(days=1))

        assert user.model_dump() == before

    def test_same_question_in_other_quiz_type_is_allowed(self):
        user = _user()
        _answer(user, "q1", quiz_type="daily")
        _answer(user, "q1", quiz_type="competitive", topic_id="t1")

        assert user.stats.total_questions_answered == 2

    @pytest.mark.parametrize("chosen,quiz_type", [("E", "daily"), ("a", "daily"), ("A", "weekly")])
    def test_malformed_input(self, chosen, quiz_type):
        user = _user()
        with pytest.raises(ValidationError):
            _answer(user, "q1", chosen=chosen, quiz_type=quiz_type)
        assert user.quiz_answers == []

    def test_negative_time_is_rejected(self):
        with pytest.raises(ValidationError):
            _answer(_user(), "q1", time_taken=-1)

    def test_counters_recomputed_from_answer_list(self):
        user = _user(total_questions_answered=40, correct_answers=40)
        _answer(user, "q1", chosen="B")

        assert user.stats.total_questions_answered == 1
        assert user.stats.correct_answers == 0

    def test_correct_never_exceeds_total(self):
        user = _user()
        for i in range(12):
            _answer(user, f"q{i}", chosen="A", correct="AB"[i % 2], now=DAY1 + timedelta(days=i // 3))
            assert user.stats.correct_answers <= user.stats.total_questions_answered


class TestStreak:
    def test_consecutive_days_then_gap(self):
        user = _user()
        _answer(user, "q1", now=DAY1)
        assert user.stats.daily_streak == 1
        _answer(user, "q2", now=DAY1 + timedelta(days=1))
        assert user.stats.daily_streak == 2
        _answer(user, "q3", now=DAY1 + timedelta(days=3))
        assert user.stats.daily_streak == 1
        assert user.stats.longest_streak == 2

    def test_same_day_does_not_increment(self):
        user = _user()
        _answer(user, "q1", now=DAY1)
        _answer(user, "q2", now=DAY1 + timedelta(days=1, hours=-8))
        _answer(user, "q3", now=DAY1 + timedelta(days=1, hours=2))
        _answer(user, "q4", now=DAY1 + timedelta(days=1, hours=10))

        assert user.stats.daily_streak == 2

    def test_day_boundary_not_elapsed_hours(self):
        user = _user()
        _answer(user, "q1", now=datetime(2024, 3, 4, 23, 50, tzinfo=timezone.utc))
        _answer(user, "q2", now=datetime(2024, 3, 5, 0, 10, tzinfo=timezone.utc))

        assert user.stats.daily_streak == 2

    def test_longest_streak_monotonic_and_above_current(self):
        user = _user()
        days = [0, 1, 2, 5, 6, 10, 11, 12, 13]
        longest = 0
        for i, day in enumerate(days):
            _answer(user, f"q{i}", now=DAY1 + timedelta(days=day))
            assert user.stats.longest_streak >= longest
            assert user.stats.longest_streak >= user.stats.daily_streak
            longest = user.stats.longest_streak
        assert longest == 4

    def test_naive_stored_date_treated_as_utc(self):
        stats = UserStats(daily_streak=3, longest_streak=3, last_answered_date=datetime(2024, 3, 3, 22, 0))
        update_streak(stats, DAY1)

        assert stats.daily_streak == 4
        assert stats.longest_streak == 4


class TestTopicProgress:
    def test_created_then_updated(self):
        user = _user()
        _answer(user, "q1", quiz_type="competitive", topic_id="t1", topic_name="Chemistry")
        _answer(user, "q2", chosen="B", quiz_type="competitive", topic_id="t1", topic_name="Chemistry")

        assert len(user.stats.topic_progress) == 1
        progress = user.stats.topic_progress[0]
        assert progress.topic_name == "Chemistry"
        assert progress.questions_answered == 2
        assert progress.correct_answers == 1

    def test_daily_answers_skip_topics(self):
        user = _user()
        _answer(user, "q1", quiz_type="daily", topic_id="t1")

        assert user.stats.topic_progress == []


class TestScoring:
    def test_accuracy(self):
        user = _user()
        for i, correct in enumerate("AABAB"):
            _answer(user, f"q{i}", chosen="A", correct=correct)
        assert accuracy(user.stats) == 60

    def test_accuracy_without_answers(self):
        assert accuracy(UserStats()) == 0

    def test_leaderboard_score(self):
        assert leaderboard_score(UserStats(correct_answers=10, daily_streak=3)) == 115

    def test_leaderboard_ordering_and_ties(self):
        users = {
            "u1": _user("Alpha", "a@example.com", total_questions_answered=10, correct_answers=5),
            "u2": _user("Bravo", "b@example.com", total_questions_answered=5, correct_answers=5),
            "u3": _user("Charlie", "c@example.com", total_questions_answered=8, correct_answers=6),
            "u4": _user("Delta", "d@example.com"),
        }
        rows = leaderboard(users, limit=10)

        assert [r["user_id"] for r in rows] == ["u3", "u2", "u1"]
        assert rows[0]["score"] == 60
        assert leaderboard_position(users["u1"], users) == 3

    def test_leaderboard_excludes_inactive_and_truncates(self):
        users = {
            f"u{i}": _user(f"User {i}", f"u{i}@example.com", total_questions_answered=i, correct_answers=i)
            for i in range(1, 6)
        }
        users["u5"].is_active = False
        rows = leaderboard(users, limit=2)

        assert [r["user_id"] for r in rows] == ["u4", "u3"]


class TestTopicLeaderboard:
    def test_empty_topic(self):
        users = {"u1": _user()}
        assert topic_leaderboard("t1", users) == []

    def test_sorted_by_correct_then_accuracy(self):
        def with_topic(name, answered, correct):
            user = _user(name, f"{name.lower()}@example.com")
            user.stats.topic_progress.append(
                TopicProgress(topic_id="t1", questions_answered=answered, correct_answers=correct))
            user.stats.topic_progress.append(
                TopicProgress(topic_id="t2", questions_answered=50, correct_answers=50))
            return user

        users = {
            "u1": with_topic("Alpha", 10, 4),
            "u2": with_topic("Bravo", 4, 4),
            "u3": with_topic("Charlie", 9, 7),
            "u4": _user("Delta", "delta@example.com"),
        }
        rows = topic_leaderboard("t1", users, limit=2)

        assert [r["user_id"] for r in rows] == ["u3", "u2"]
        assert rows[1]["accuracy"] == 100
        assert rows[0]["questions_answered"] == 9


class TestLeaderboardPosition:
    def _board(self):
        return {
            "u1": _user("Alpha", "a@example.com", total_questions_answered=4, correct_answers=3),
            "u2": _user("Bravo", "b@example.com", total_questions_answered=2, correct_answers=1),
        }

    def test_user_without_answers_has_no_rank(self):
        users = self._board()
        users["u3"] = _user("Charlie", "c@example.com")
        assert leaderboard_position(users["u3"], users) is None

    def test_inactive_user_has_no_rank(self):
        users = self._board()
        users["u1"].is_active = False
        assert leaderboard_position(users["u1"], users) is None
        assert leaderboard_position(users["u2"], users) == 1
