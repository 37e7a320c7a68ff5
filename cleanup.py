"""
Cascade cleanup after a parent document is deleted.

The parent is always deleted first by the caller. Each step here runs on
its own: a failing step is logged and the remaining ones still run, and
nothing is rolled back.
"""

from typing import Callable, List

import structlog
from bson import ObjectId
from pymongo.errors import PyMongoError

from database import Database
from media import MediaStore

logger = structlog.get_logger(__name__)


def _step(name: str, parent: ObjectId, fn: Callable[[], int]) -> int:
    try:
        return fn()
    except PyMongoError as e:
        logger.error("cascade_step_failed", step=name, parent=str(parent), error=str(e))
        return 0


def cleanup_video(db: Database, media: MediaStore, video: dict) -> dict:
    """Remove everything that points at a deleted video."""
    video_id = video["_id"]
    comment_ids: List[ObjectId] = _comment_ids(db, video_id)

    removed = {
        "videoLikes": _step("video_likes", video_id, lambda: db["likes"].delete_many(
            {"kind": "video", "target": video_id}).deleted_count),
        "commentLikes": _step("comment_likes", video_id, lambda: db["likes"].delete_many(
            {"kind": "comment", "target": {"$in": comment_ids}}).deleted_count) if comment_ids else 0,
        "comments": _step("comments", video_id, lambda: db["comments"].delete_many(
            {"video": video_id}).deleted_count),
        "playlists": _step("playlist_entries", video_id, lambda: db["playlists"].update_many(
            {"videos": video_id}, {"$pull": {"videos": video_id}}).modified_count),
        "watchHistory": _step("watch_history", video_id, lambda: db["users"].update_many(
            {"watchHistory": video_id}, {"$pull": {"watchHistory": video_id}}).modified_count),
    }
    for field in ("videoFile", "thumbnail"):
        asset = video.get(field) or {}
        media.delete(asset.get("publicId"))
    logger.info("video_cascade_done", video=str(video_id), **removed)
    return removed


def _comment_ids(db: Database, video_id: ObjectId) -> List[ObjectId]:
    try:
        return [c["_id"] for c in db["comments"].find({"video": video_id}, {"_id": 1})]
    except PyMongoError as e:
        logger.error("cascade_step_failed", step="comment_ids", parent=str(video_id), error=str(e))
        return []


def cleanup_comment(db: Database, comment_id: ObjectId) -> int:
    return _step("comment_likes", comment_id, lambda: db["likes"].delete_many(
        {"kind": "comment", "target": comment_id}).deleted_count)


def cleanup_tweet(db: Database, tweet_id: ObjectId) -> int:
    return _step("tweet_likes", tweet_id, lambda: db["likes"].delete_many(
        {"kind": "tweet", "target": tweet_id}).deleted_count)
