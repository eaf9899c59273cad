from datetime import datetime, timedelta, timezone

import mongomock
import pytest
from fastapi.testclient import TestClient

from database import Database
from main import create_app
from schemas import DailyQuiz, Question, Topic, User
from stores import ContentStore, UserStore
from tracker import ProgressTracker


class FakeClock:
    def __init__(self, start):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, days=0, hours=0):
        self.now = self.now + timedelta(days=days, hours=hours)


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 3, 4, 9, 30, tzinfo=timezone.utc))


@pytest.fixture
def database():
    return Database(mongomock.MongoClient(), "quizdaily_test")


@pytest.fixture
def users(database):
    return UserStore(database)


@pytest.fixture
def content(database):
    return ContentStore(database)


@pytest.fixture
def tracker(users, content, clock):
    return ProgressTracker(users, content, clock=clock)


@pytest.fixture
def user_id(database):
    return database.create_document("user", User(name="Ada Lovelace", email="ada@example.com"))


@pytest.fixture
def topic_id(database):
    return database.create_document("topic", Topic(name="Chemistry", slug="chemistry"))


def _options():
    return {"option_a": "Water", "option_b": "Oxygen", "option_c": "Hydrogen", "option_d": "Carbon"}


@pytest.fixture
def make_question(database, topic_id):
    def factory(correct="A", topic=None):
        return database.create_document("question", Question(
            topic_id=topic or topic_id,
            question="What is the chemical formula H2O?",
            correct_option=correct,
            explanation="H2O is water.",
            **_options(),
        ))
    return factory


@pytest.fixture
def make_daily(database):
    def factory(correct="A"):
        return database.create_document("dailyquiz", DailyQuiz(
            question="What is H2O?",
            correct_option=correct,
            **_options(),
        ))
    return factory


@pytest.fixture
def client(database, clock):
    app = create_app(database=database, clock=clock)
    with TestClient(app) as test_client:
        yield test_client
