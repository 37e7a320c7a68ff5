"""
MongoDB access for the service.

One Database object owns the pymongo client (and its connection pool) for
the life of the process. Handlers reach it through the application context
instead of a module-level global.
"""

from datetime import datetime, timezone
from typing import List, Optional, Union

import structlog
from bson import ObjectId
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient
from pymongo.collection import Collection

from config import Settings

logger = structlog.get_logger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Database:
    def __init__(self, settings: Settings, client: Optional[MongoClient] = None):
        self.settings = settings
        self._client = client
        self._db = None

    @property
    def connected(self) -> bool:
        return self._db is not None

    def connect(self) -> "Database":
        if self._db is not None:
            return self
        if self._client is None:
            self._client = MongoClient(self.settings.database_url)
        self._db = self._client[self.settings.database_name]
        self.ensure_indexes()
        logger.info("database_connected", database=self.settings.database_name)
        return self

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            logger.info("database_closed", database=self.settings.database_name)
        self._client = None
        self._db = None

    def ensure_indexes(self) -> None:
        # natural keys of the presence-based relations double as the race guard for toggles
        self["users"].create_index([("username", ASCENDING)], unique=True)
        self["users"].create_index([("email", ASCENDING)], unique=True)
        self["likes"].create_index(
            [("likedBy", ASCENDING), ("kind", ASCENDING), ("target", ASCENDING)], unique=True
        )
        self["likes"].create_index([("target", ASCENDING)])
        self["subscriptions"].create_index(
            [("subscriber", ASCENDING), ("channel", ASCENDING)], unique=True
        )
        self["subscriptions"].create_index([("channel", ASCENDING)])
        self["videos"].create_index([("owner", ASCENDING), ("createdAt", ASCENDING)])
        self["comments"].create_index([("video", ASCENDING)])
        self["tweets"].create_index([("owner", ASCENDING)])
        self["playlists"].create_index([("owner", ASCENDING)])

    def __getitem__(self, name: str) -> Collection:
        if self._db is None:
            raise RuntimeError("Database is not connected")
        return self._db[name]

    @property
    def name(self) -> str:
        return self.settings.database_name

    def list_collection_names(self) -> List[str]:
        return self._db.list_collection_names() if self._db is not None else []

    def create_document(self, collection_name: str, data: Union[BaseModel, dict]) -> dict:
        """Insert a document with createdAt / updatedAt stamped and return it with its _id."""
        if isinstance(data, BaseModel):
            data = data.model_dump()
        now = utcnow()
        doc = {**data, "createdAt": now, "updatedAt": now}
        doc["_id"] = self[collection_name].insert_one(doc).inserted_id
        return doc

    def find_by_id(self, collection_name: str, _id: ObjectId, projection: Optional[dict] = None) -> Optional[dict]:
        return self[collection_name].find_one({"_id": _id}, projection)

    def aggregate(self, collection_name: str, pipeline: List[dict]) -> List[dict]:
        return list(self[collection_name].aggregate(pipeline))
