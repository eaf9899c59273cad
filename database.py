"""
MongoDB access for QuizDaily

A Database wraps one MongoClient and one database handle. It is created once
at process start (see main.create_app) and closed at shutdown; nothing here
connects at import time.
"""

import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel
from pymongo import MongoClient

logger = logging.getLogger(__name__)


class Database:
    def __init__(self, client, name: str):
        self.client = client
        self.db = client[name]
        self.name = name

    @classmethod
    def from_env(cls) -> Optional["Database"]:
        """Build from DATABASE_URL / DATABASE_NAME, or None when unset."""
        url = os.getenv("DATABASE_URL")
        name = os.getenv("DATABASE_NAME")
        if not url or not name:
            logger.warning("DATABASE_URL or DATABASE_NAME not set; running without a database")
            return None
        logger.info("Connecting to MongoDB database %s", name)
        return cls(MongoClient(url), name)

    def collection(self, name: str):
        return self.db[name]

    def list_collection_names(self) -> List[str]:
        return self.db.list_collection_names()

    def create_document(self, collection_name: str, data: Union[BaseModel, Dict[str, Any]]) -> str:
        """Insert a document stamped with created_at/updated_at and return its id."""
        if isinstance(data, BaseModel):
            doc = data.model_dump()
        else:
            doc = dict(data)
        now = datetime.now(timezone.utc)
        doc["created_at"] = now
        doc["updated_at"] = now
        result = self.db[collection_name].insert_one(doc)
        return str(result.inserted_id)

    def ensure_indexes(self):
        users = self.db["user"]
        users.create_index("email", unique=True)
        users.create_index([("quiz_answers.question_id", 1), ("quiz_answers.type", 1)])
        users.create_index([("stats.daily_streak", -1)])
        users.create_index("stats.topic_progress.topic_id")
        self.db["topic"].create_index("slug", unique=True)
        self.db["question"].create_index("topic_id")
        self.db["dailyquiz"].create_index([("date", -1)])

    def close(self):
        logger.info("Closing MongoDB connection")
        self.client.close()
