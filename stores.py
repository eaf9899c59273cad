"""
User and content stores over MongoDB collections
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ReturnDocument

from database import Database
from schemas import QuizAnswer, User
from tracker import ConflictError, NotFound, QuestionKey

logger = logging.getLogger(__name__)


def to_oid(value: str) -> ObjectId:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise NotFound(f"Invalid id: {value}")


def sanitize(doc: Optional[dict]):
    if not doc:
        return doc
    d = dict(doc)
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    return d


def _now():
    return datetime.now(timezone.utc)


class UserStore:
    def __init__(self, database: Database):
        self.collection = database.collection("user")

    def load_user(self, user_id: str) -> User:
        doc = self.collection.find_one({"_id": to_oid(user_id)})
        if not doc:
            raise NotFound("User not found")
        return User(**doc)

    def find_by_email(self, email: str) -> Optional[dict]:
        return self.collection.find_one({"email": email.strip().lower()})

    def save_user(self, user_id: str, user: User, expected_revision: int, new_answer: QuizAnswer):
        """Persist answers and stats in one update, guarded by revision and answer key.

        Raises ConflictError if the stored revision moved on or the same
        (question_id, type) pair is already present.
        """
        result = self.collection.update_one(
            {
                "_id": to_oid(user_id),
                "revision": expected_revision,
                "quiz_answers": {"$not": {"$elemMatch": {
                    "question_id": new_answer.question_id,
                    "type": new_answer.type,
                }}},
            },
            {"$set": {
                "quiz_answers": [a.model_dump() for a in user.quiz_answers],
                "stats": user.stats.model_dump(),
                "revision": expected_revision + 1,
                "updated_at": _now(),
            }},
        )
        if result.matched_count == 0:
            logger.warning("Stale save for user %s at revision %d", user_id, expected_revision)
            raise ConflictError("User record changed during update")
        user.revision = expected_revision + 1

    def find_answer(self, user_id: str, question_id: str, quiz_type: str) -> Optional[QuizAnswer]:
        user = self.load_user(user_id)
        for answer in user.quiz_answers:
            if answer.question_id == question_id and answer.type == quiz_type:
                return answer
        return None

    def delete_user(self, user_id: str):
        result = self.collection.delete_one({"_id": to_oid(user_id)})
        if result.deleted_count == 0:
            raise NotFound("User not found")

    def _load_many(self, query: Dict[str, Any]) -> Dict[str, User]:
        return {str(doc["_id"]): User(**doc) for doc in self.collection.find(query)}

    def active_users(self) -> Dict[str, User]:
        return self._load_many({"is_active": True, "stats.total_questions_answered": {"$gt": 0}})

    def users_with_topic(self, topic_id: str) -> Dict[str, User]:
        return self._load_many({"is_active": True, "stats.topic_progress.topic_id": topic_id})


class ContentStore:
    def __init__(self, database: Database):
        self.topics = database.collection("topic")
        self.questions = database.collection("question")
        self.daily = database.collection("dailyquiz")

    def _collection_for(self, quiz_type: str):
        return self.daily if quiz_type == "daily" else self.questions

    def lookup_correct_option(self, question_id: str, quiz_type: str) -> QuestionKey:
        doc = self._collection_for(quiz_type).find_one({"_id": to_oid(question_id)})
        if not doc:
            raise NotFound("Question not found")

        topic_id = doc.get("topic_id")
        topic_name = None
        if topic_id:
            topic = self.topics.find_one({"_id": to_oid(topic_id)}, {"name": 1})
            topic_name = topic.get("name") if topic else None
        return QuestionKey(
            question_id=question_id,
            quiz_type=quiz_type,
            correct_option=doc["correct_option"],
            explanation=doc.get("explanation"),
            topic_id=topic_id,
            topic_name=topic_name,
        )

    def increment_question_stats(self, question_id: str, quiz_type: str, was_correct: bool,
                                 time_taken: int = 0):
        collection = self._collection_for(quiz_type)
        updated = collection.find_one_and_update(
            {"_id": to_oid(question_id)},
            {"$inc": {
                "stats.times_answered": 1,
                "stats.correct_count": 1 if was_correct else 0,
            }},
            return_document=ReturnDocument.AFTER,
        )
        if updated is None:
            raise NotFound("Question not found")
        if quiz_type == "daily":
            return

        stats = updated.get("stats", {})
        n = stats.get("times_answered", 1)
        old_avg = stats.get("avg_time_taken", 0)
        new_avg = round((old_avg * (n - 1) + time_taken) / n)
        collection.update_one({"_id": updated["_id"]}, {"$set": {"stats.avg_time_taken": new_avg}})

    def latest_daily_quiz(self) -> Optional[dict]:
        docs = list(self.daily.find().sort("date", -1).limit(1))
        return docs[0] if docs else None

    def list_topics(self) -> List[dict]:
        return list(self.topics.find({"is_active": True}, {"name": 1, "slug": 1, "icon": 1, "order": 1})
                    .sort("order", 1))

    def get_topic(self, topic_id: str) -> Optional[dict]:
        return self.topics.find_one({"_id": to_oid(topic_id)})

    def topic_questions(self, topic_id: str) -> List[dict]:
        return list(self.questions.find({"topic_id": topic_id, "is_active": True}))

    def topic_question_counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for doc in self.questions.find({"is_active": True}, {"topic_id": 1}):
            counts[doc["topic_id"]] = counts.get(doc["topic_id"], 0) + 1
        return counts

    def topic_names(self) -> Dict[str, str]:
        return {str(doc["_id"]): doc.get("name") for doc in self.topics.find({}, {"name": 1})}
