"""
Presence-based relations that a request flips on or off: likes and
subscriptions.

The read-then-write is made safe by the unique index on each natural key
(see Database.ensure_indexes). A concurrent request that inserts first
turns our insert into a DuplicateKeyError, which means the relation is
already on; a concurrent delete that wins means it is already off. Both are
reported as the resulting state, not as errors.
"""

from dataclasses import dataclass
from typing import Optional

import structlog
from bson import ObjectId
from pymongo.errors import DuplicateKeyError

from database import Database, utcnow
from errors import BadRequest
from schemas import Like, LikeTarget, Subscription

logger = structlog.get_logger(__name__)


@dataclass
class ToggleResult:
    active: bool
    document: Optional[dict]
    message: str


def _toggle(db: Database, collection: str, key: dict, label_on: str, label_off: str) -> ToggleResult:
    existing = db[collection].find_one(key)
    if existing is not None:
        deleted = db[collection].delete_one({"_id": existing["_id"]}).deleted_count
        if not deleted:
            logger.info("toggle_race_resolved", collection=collection, state="off")
        return ToggleResult(active=False, document=None, message=label_off)

    doc = {**key, "createdAt": utcnow()}
    try:
        doc["_id"] = db[collection].insert_one(doc).inserted_id
    except DuplicateKeyError:
        logger.info("toggle_race_resolved", collection=collection, state="on")
        return ToggleResult(active=True, document=db[collection].find_one(key), message=label_on)
    return ToggleResult(active=True, document=doc, message=label_on)


def toggle_like(db: Database, user_id: ObjectId, target: LikeTarget) -> ToggleResult:
    key = Like.for_target(target, user_id).model_dump()
    return _toggle(db, "likes", key, label_on=f"{target.kind.capitalize()} liked",
                   label_off=f"{target.kind.capitalize()} like removed")


def toggle_subscription(db: Database, subscriber: ObjectId, channel: ObjectId) -> ToggleResult:
    if subscriber == channel:
        raise BadRequest("You cannot subscribe to your own channel")
    key = Subscription(subscriber=subscriber, channel=channel).model_dump()
    return _toggle(db, "subscriptions", key, label_on="Subscribed successfully",
                   label_off="Unsubscribed successfully")
