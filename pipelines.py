"""
Aggregation pipelines for the read side of the API.

Every feed and detail view is a MongoDB aggregation assembled with
``Pipeline``. The builder keeps stages in five sections and always emits
them in the same order::

    filter -> join -> derive -> sort -> project

so a join never runs against a document that a projection has already
narrowed, whatever order the caller added stages in. Pagination
(see pagination.py) is appended after the project section.

Joins are left-outer: ``$lookup`` always yields an array, and single-valued
joins are collapsed with ``$first``, which resolves to null/absent on zero
matches instead of dropping the parent row.

Only ``localField``/``foreignField`` lookups are used. When a join key lives
inside an array of already-joined documents, it is first lifted into a
plain array field with ``$addFields``.
"""

import re
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from bson import ObjectId

from errors import BadRequest

ASC = 1
DESC = -1

# public profile of a user when attached to another document
PROFILE_FIELDS = ("_id", "username", "fullName", "avatar.url")

VIDEO_SORT_FIELDS = ("createdAt", "updatedAt", "views", "duration", "title")
DEFAULT_SORT_FIELD = "createdAt"


def visible_to(viewer: ObjectId) -> Dict[str, Any]:
    """Query condition: published, or owned by the viewer."""
    return {"$or": [{"isPublished": True}, {"owner": viewer}]}


def visible_videos(path: str, viewer: ObjectId) -> Dict[str, Any]:
    """Expression: the videos at ``path`` the viewer may see."""
    return {"$filter": {
        "input": {"$ifNull": [f"${path}", []]},
        "as": "v",
        "cond": {"$or": [{"$eq": ["$$v.isPublished", True]}, {"$eq": ["$$v.owner", viewer]}]},
    }}


def escape_search(term: str) -> str:
    """Escape a user supplied search term so it is matched literally."""
    return re.escape(term.strip())


def resolve_sort(sort_by: Optional[str], sort_type: Optional[str],
                 allowed: Sequence[str] = VIDEO_SORT_FIELDS,
                 default: str = DEFAULT_SORT_FIELD) -> Tuple[str, int]:
    field = sort_by or default
    if field not in allowed:
        raise BadRequest(f"sortBy must be one of: {', '.join(allowed)}")
    if sort_type is None or sort_type == "":
        return field, DESC
    sort_type = sort_type.lower()
    if sort_type not in ("asc", "desc"):
        raise BadRequest("sortType must be 'asc' or 'desc'")
    return field, ASC if sort_type == "asc" else DESC


class Pipeline:
    """Section-ordered aggregation pipeline builder."""

    def __init__(self):
        self._match: Dict[str, Any] = {}
        self._or: List[List[dict]] = []
        self._joins: List[dict] = []
        self._derived: List[dict] = []
        self._sort: Dict[str, int] = {}
        self._include: List[str] = []
        self._computed: Dict[str, Any] = {}
        self._exclude_id = False

    # -- filter ---------------------------------------------------------
    def match(self, **conditions) -> "Pipeline":
        self._match.update(conditions)
        return self

    def search(self, term: Optional[str], fields: Iterable[str]) -> "Pipeline":
        if term is None or not term.strip():
            return self
        pattern = escape_search(term)
        self._or.append([{f: {"$regex": pattern, "$options": "i"}} for f in fields])
        return self

    # -- join -----------------------------------------------------------
    def join_many(self, from_: str, local: str, foreign: str, as_: str) -> "Pipeline":
        self._joins.append({
            "$lookup": {"from": from_, "localField": local, "foreignField": foreign, "as": as_}
        })
        return self

    def join_one(self, from_: str, local: str, as_: str, foreign: str = "_id",
                 fields: Sequence[str] = PROFILE_FIELDS) -> "Pipeline":
        self.join_many(from_, local, foreign, as_)
        self.derive(as_, {"$first": f"${as_}"})
        self.project(*(f"{as_}.{f}" for f in fields))
        return self

    def unwind(self, field: str) -> "Pipeline":
        # inner semantics: rows without a match are dropped
        self._joins.append({"$unwind": f"${field}"})
        return self

    def replace_root(self, field: str) -> "Pipeline":
        self._joins.append({"$replaceRoot": {"newRoot": f"${field}"}})
        return self

    def where(self, condition: Dict[str, Any]) -> "Pipeline":
        """Filter on fields that only exist once the preceding joins ran."""
        self._joins.append({"$match": condition})
        return self

    def lift(self, field: str, path: str) -> "Pipeline":
        """Copy the values at ``path`` (e.g. ``videos._id``) into a flat array
        field so it can serve as the local key of a later join."""
        self._joins.append({"$addFields": {field: f"${path}"}})
        return self

    # -- derive ---------------------------------------------------------
    def derive(self, field: str, expression: Any) -> "Pipeline":
        self._derived.append({"$addFields": {field: expression}})
        return self

    def count(self, field: str, of: str) -> "Pipeline":
        return self.derive(field, {"$size": {"$ifNull": [f"${of}", []]}})

    def total(self, field: str, path: str) -> "Pipeline":
        # $sum over an array ignores non-numbers and yields 0 when empty
        return self.derive(field, {"$sum": f"${path}"})

    def contains(self, field: str, value: Any, path: str) -> "Pipeline":
        return self.derive(field, {"$in": [value, {"$ifNull": [f"${path}", []]}]})

    # -- sort -----------------------------------------------------------
    def sort(self, key: str = DEFAULT_SORT_FIELD, direction: int = DESC) -> "Pipeline":
        self._sort[key] = direction
        return self

    # -- project --------------------------------------------------------
    def project(self, *fields: str, **computed: Any) -> "Pipeline":
        for f in fields:
            if f not in self._include:
                self._include.append(f)
        self._computed.update(computed)
        return self

    def exclude_id(self) -> "Pipeline":
        self._exclude_id = True
        return self

    # -- output ---------------------------------------------------------
    def build(self) -> List[dict]:
        stages: List[dict] = []
        match = dict(self._match)
        if len(self._or) == 1:
            match["$or"] = self._or[0]
        elif self._or:
            match["$and"] = [{"$or": clause} for clause in self._or]
        if match:
            stages.append({"$match": match})
        stages.extend(self._joins)
        stages.extend(self._derived)
        if self._sort:
            sort = dict(self._sort)
            # ties broken on _id so page windows are stable
            sort.setdefault("_id", next(iter(self._sort.values())))
            stages.append({"$sort": sort})
        if self._include or self._computed:
            projection: Dict[str, Any] = {}
            if self._exclude_id:
                projection["_id"] = 0
            projection.update({f: 1 for f in self._include if f not in self._computed})
            projection.update(self._computed)
            stages.append({"$project": projection})
        return stages


# ---------------------------------------------------------------------------
# Videos
# ---------------------------------------------------------------------------

VIDEO_CARD_FIELDS = ("_id", "title", "description", "duration", "views", "isPublished",
                     "createdAt", "updatedAt", "likesCount")


def _video_card(p: Pipeline) -> Pipeline:
    return p.project(*VIDEO_CARD_FIELDS, videoFile="$videoFile.url", thumbnail="$thumbnail.url")


def video_feed(query: Optional[str] = None, owner: Optional[ObjectId] = None,
               viewer: Optional[ObjectId] = None, sort_by: str = DEFAULT_SORT_FIELD,
               direction: int = DESC) -> List[dict]:
    p = Pipeline()
    if owner is not None:
        p.match(owner=owner)
    if owner is None or owner != viewer:
        p.match(isPublished=True)
    p.search(query, ("title", "description"))
    p.join_many("likes", "_id", "target", "likes")
    p.join_one("users", "owner", "owner")
    p.count("likesCount", "likes")
    p.sort(sort_by, direction)
    return _video_card(p).build()


def video_detail(video_id: ObjectId, viewer: ObjectId) -> List[dict]:
    p = Pipeline().match(_id=video_id)
    p.join_many("likes", "_id", "target", "likes")
    # joined on the raw owner id, before the owner join replaces it
    p.join_many("subscriptions", "owner", "channel", "ownerSubscribers")
    p.join_one("users", "owner", "owner")
    p.count("likesCount", "likes")
    p.contains("isLiked", viewer, "likes.likedBy")
    p.count("owner.subscribersCount", "ownerSubscribers")
    p.contains("owner.isSubscribed", viewer, "ownerSubscribers.subscriber")
    p.project("isLiked", "owner.subscribersCount", "owner.isSubscribed")
    return _video_card(p).build()


def channel_videos(owner: ObjectId) -> List[dict]:
    p = Pipeline().match(owner=owner)
    p.join_many("likes", "_id", "target", "likes")
    p.join_many("comments", "_id", "video", "comments")
    p.count("likesCount", "likes")
    p.count("commentsCount", "comments")
    p.sort("createdAt", DESC)
    return _video_card(p).project("commentsCount").build()


def watch_history(video_ids: List[ObjectId], viewer: ObjectId) -> List[dict]:
    p = Pipeline().match(_id={"$in": video_ids}).where(visible_to(viewer))
    p.join_many("likes", "_id", "target", "likes")
    p.join_one("users", "owner", "owner")
    p.count("likesCount", "likes")
    return _video_card(p).build()


def liked_videos(viewer: ObjectId) -> List[dict]:
    """Videos the viewer liked, most recently liked first.

    Runs on ``likes``; a like whose video is gone has nothing to show and
    is dropped by the unwind.
    """
    p = Pipeline().match(likedBy=viewer, kind="video")
    p.join_many("videos", "target", "_id", "video")
    p.unwind("video").lift("video.likedAt", "createdAt").replace_root("video")
    # liked while published, hidden once the owner unpublished it
    p.where(visible_to(viewer))
    p.join_many("likes", "_id", "target", "likes")
    p.join_one("users", "owner", "owner")
    p.count("likesCount", "likes")
    p.sort("likedAt", DESC)
    return _video_card(p).project("likedAt").build()


# ---------------------------------------------------------------------------
# Comments and tweets
# ---------------------------------------------------------------------------

def comment_feed(video_id: ObjectId, viewer: ObjectId) -> List[dict]:
    p = Pipeline().match(video=video_id)
    p.join_many("likes", "_id", "target", "likes")
    p.join_one("users", "owner", "owner")
    p.count("likesCount", "likes")
    p.contains("isLiked", viewer, "likes.likedBy")
    p.sort("createdAt", DESC)
    return p.project("_id", "content", "video", "createdAt", "updatedAt", "likesCount", "isLiked").build()


def tweet_feed(owner: ObjectId, viewer: ObjectId) -> List[dict]:
    p = Pipeline().match(owner=owner)
    p.join_many("likes", "_id", "target", "likes")
    p.join_one("users", "owner", "owner")
    p.count("likesCount", "likes")
    p.contains("isLiked", viewer, "likes.likedBy")
    p.sort("createdAt", DESC)
    return p.project("_id", "content", "createdAt", "updatedAt", "likesCount", "isLiked").build()


# ---------------------------------------------------------------------------
# Playlists
# ---------------------------------------------------------------------------

def user_playlists(owner: ObjectId, viewer: ObjectId) -> List[dict]:
    p = Pipeline().match(owner=owner)
    p.join_many("videos", "videos", "_id", "videoDocs")
    p.derive("videoDocs", visible_videos("videoDocs", viewer))
    p.count("totalVideos", "videoDocs")
    p.total("totalViews", "videoDocs.views")
    p.derive("coverThumbnail", {"$first": "$videoDocs.thumbnail.url"})
    p.sort("updatedAt", DESC)
    return p.project("_id", "name", "description", "owner", "createdAt", "updatedAt",
                     "totalVideos", "totalViews", "coverThumbnail").build()


def playlist_detail(playlist_id: ObjectId, viewer: ObjectId) -> List[dict]:
    p = Pipeline().match(_id=playlist_id)
    p.join_many("videos", "videos", "_id", "videos")
    p.derive("videos", visible_videos("videos", viewer))
    p.join_one("users", "owner", "owner")
    p.count("totalVideos", "videos")
    p.total("totalViews", "videos.views")
    return p.project(
        "_id", "name", "description", "createdAt", "updatedAt", "totalVideos", "totalViews",
        "videos._id", "videos.title", "videos.description", "videos.duration", "videos.views",
        "videos.owner", "videos.createdAt", "videos.thumbnail.url", "videos.videoFile.url",
    ).build()


# ---------------------------------------------------------------------------
# Subscriptions and channels
# ---------------------------------------------------------------------------

def channel_subscribers(channel: ObjectId) -> List[dict]:
    """Users following ``channel``, each with their own follower count and
    whether ``channel`` follows them back."""
    p = Pipeline().match(channel=channel)
    p.join_many("subscriptions", "subscriber", "channel", "subscriberFollowers")
    p.join_many("users", "subscriber", "_id", "subscriber")
    p.unwind("subscriber")
    p.count("subscriber.subscribersCount", "subscriberFollowers")
    p.contains("subscriber.subscribedToSubscriber", channel, "subscriberFollowers.subscriber")
    p.sort("createdAt", DESC)
    p.exclude_id()
    return p.project(*(f"subscriber.{f}" for f in PROFILE_FIELDS),
                     "subscriber.subscribersCount", "subscriber.subscribedToSubscriber",
                     "createdAt").build()


def subscribed_channels(subscriber: ObjectId) -> List[dict]:
    p = Pipeline().match(subscriber=subscriber)
    p.join_many("videos", "channel", "owner", "channelVideos")
    p.join_many("subscriptions", "channel", "channel", "channelFollowers")
    p.join_many("users", "channel", "_id", "subscribedChannel")
    p.unwind("subscribedChannel")
    p.derive("publishedVideos", {"$filter": {
        "input": "$channelVideos", "as": "v", "cond": {"$eq": ["$$v.isPublished", True]},
    }})
    # newest by createdAt, not by insertion order
    p.derive("latestAt", {"$max": "$publishedVideos.createdAt"})
    p.derive("latestVideos", {"$filter": {
        "input": "$publishedVideos", "as": "v", "cond": {"$eq": ["$$v.createdAt", "$latestAt"]},
    }})
    p.derive("subscribedChannel.latestVideo", {"$last": "$latestVideos"})
    p.count("subscribedChannel.subscribersCount", "channelFollowers")
    p.sort("createdAt", DESC)
    p.exclude_id()
    return p.project(
        *(f"subscribedChannel.{f}" for f in PROFILE_FIELDS),
        "subscribedChannel.subscribersCount",
        "subscribedChannel.latestVideo._id", "subscribedChannel.latestVideo.title",
        "subscribedChannel.latestVideo.description", "subscribedChannel.latestVideo.duration",
        "subscribedChannel.latestVideo.views", "subscribedChannel.latestVideo.createdAt",
        "subscribedChannel.latestVideo.thumbnail.url", "subscribedChannel.latestVideo.videoFile.url",
        "createdAt",
    ).build()


def channel_profile(username: str, viewer: ObjectId) -> List[dict]:
    p = Pipeline().match(username=username.strip().lower())
    p.join_many("subscriptions", "_id", "channel", "subscribers")
    p.join_many("subscriptions", "_id", "subscriber", "subscribedTo")
    p.join_many("videos", "_id", "owner", "videos")
    p.count("subscribersCount", "subscribers")
    p.count("channelsSubscribedToCount", "subscribedTo")
    p.count("videosCount", "videos")
    p.contains("isSubscribed", viewer, "subscribers.subscriber")
    return p.project("_id", "username", "fullName", "email", "avatar.url", "coverImage.url",
                     "createdAt", "subscribersCount", "channelsSubscribedToCount",
                     "videosCount", "isSubscribed").build()
