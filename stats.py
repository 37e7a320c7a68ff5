"""Channel statistics for the dashboard."""

from typing import Dict, List

from bson import ObjectId

from database import Database
from pipelines import Pipeline

STAT_FIELDS = (
    "totalVideos",
    "totalViews",
    "totalSubscribers",
    "totalSubscriptions",
    "totalVideoLikes",
    "totalCommentLikes",
    "totalTweetLikes",
    "totalLikes",
    "totalComments",
    "totalTweets",
)


def channel_stats_pipeline(user_id: ObjectId) -> List[dict]:
    """One pass over ``users``: every related collection is joined onto the
    channel owner and reduced to a count or a sum."""
    p = Pipeline().match(_id=user_id)
    p.join_many("videos", "_id", "owner", "videos")
    p.join_many("subscriptions", "_id", "channel", "subscribers")
    p.join_many("subscriptions", "_id", "subscriber", "subscriptions")
    p.join_many("comments", "_id", "owner", "ownComments")
    p.join_many("tweets", "_id", "owner", "tweets")
    p.lift("videoIds", "videos._id")
    p.lift("commentIds", "ownComments._id")
    p.lift("tweetIds", "tweets._id")
    p.join_many("likes", "videoIds", "target", "videoLikes")
    p.join_many("likes", "commentIds", "target", "commentLikes")
    p.join_many("likes", "tweetIds", "target", "tweetLikes")
    p.join_many("comments", "videoIds", "video", "commentsReceived")
    p.count("totalVideos", "videos")
    p.total("totalViews", "videos.views")
    p.count("totalSubscribers", "subscribers")
    p.count("totalSubscriptions", "subscriptions")
    p.count("totalVideoLikes", "videoLikes")
    p.count("totalCommentLikes", "commentLikes")
    p.count("totalTweetLikes", "tweetLikes")
    p.derive("totalLikes", {"$add": ["$totalVideoLikes", "$totalCommentLikes", "$totalTweetLikes"]})
    p.count("totalComments", "commentsReceived")
    p.count("totalTweets", "tweets")
    p.exclude_id()
    return p.project(*STAT_FIELDS).build()


def channel_stats(db: Database, user_id: ObjectId) -> Dict[str, int]:
    rows = db.aggregate("users", channel_stats_pipeline(user_id))
    row = rows[0] if rows else {}
    # zero is the identity for every total, absent or null included
    return {field: int(row.get(field) or 0) for field in STAT_FIELDS}
