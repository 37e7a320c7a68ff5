from typing import Optional

import structlog
from fastapi import APIRouter, Depends, File, Form, UploadFile

from cleanup import cleanup_video
from context import AppContext, get_context
from database import utcnow
from errors import BadRequest, NotFound, ensure_owner, objid
from pagination import PageRequest, page_request, paginate
from pipelines import resolve_sort, video_detail, video_feed
from responses import api_response
from schemas import Video
from security import get_current_user

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/videos", tags=["videos"])


def _load_video(ctx: AppContext, video_id: str) -> dict:
    video = ctx.db.find_by_id("videos", objid(video_id, "video id"))
    if not video:
        raise NotFound("Video not found")
    return video


def load_visible_video(ctx: AppContext, video_id: str, viewer) -> dict:
    """Load a video the viewer may see; someone else's draft is reported as missing."""
    video = _load_video(ctx, video_id)
    if not video.get("isPublished", True) and video.get("owner") != viewer:
        raise NotFound("Video not found")
    return video


def record_view(ctx: AppContext, video_id, user_id) -> bool:
    """Move the video to the most recent end of the viewer's history; only a
    first view counts.

    One pipeline update drops any earlier entry and appends the id, so the
    history never holds the id twice.
    """
    before = ctx.db["users"].find_one_and_update(
        {"_id": user_id},
        [{"$set": {"watchHistory": {"$concatArrays": [
            {"$filter": {"input": {"$ifNull": ["$watchHistory", []]}, "as": "v", "cond": {"$ne": ["$$v", video_id]}}},
            [video_id],
        ]}}}],
        projection={"watchHistory": 1},
    )
    first = before is not None and video_id not in (before.get("watchHistory") or [])
    if first:
        ctx.db["videos"].update_one({"_id": video_id}, {"$inc": {"views": 1}})
    return first


@router.get("")
def list_videos(
    query: Optional[str] = None,
    sortBy: Optional[str] = None,
    sortType: Optional[str] = None,
    userId: Optional[str] = None,
    page: PageRequest = Depends(page_request),
    user: dict = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
):
    owner = objid(userId, "user id") if userId else None
    sort_by, direction = resolve_sort(sortBy, sortType)
    pipeline = video_feed(query=query, owner=owner, viewer=user["_id"], sort_by=sort_by, direction=direction)
    result = paginate(ctx.db, "videos", pipeline, page)
    message = "Videos fetched successfully" if result["totalItems"] else "No videos found"
    return api_response(200, result, message)


@router.post("")
def publish_video(
    title: str = Form(...),
    description: str = Form(...),
    duration: Optional[float] = Form(None),
    videoFile: UploadFile = File(...),
    thumbnail: UploadFile = File(...),
    user: dict = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
):
    if not title.strip() or not description.strip():
        raise BadRequest("Title and description are required")
    if duration is not None and duration < 0:
        raise BadRequest("Duration must not be negative")

    video_asset = ctx.media.upload(videoFile, "video", duration=duration)
    thumb_asset = ctx.media.upload(thumbnail, "image")
    video = Video(
        title=title.strip(),
        description=description.strip(),
        videoFile=video_asset,
        thumbnail=thumb_asset,
        duration=duration or 0,
        owner=user["_id"],
    )
    doc = ctx.db.create_document("videos", video.model_dump(exclude_none=True))
    logger.info("video_published", video=str(doc["_id"]), owner=str(user["_id"]))
    return api_response(201, doc, "Video uploaded successfully")


@router.get("/{videoId}")
def get_video(videoId: str, user: dict = Depends(get_current_user), ctx: AppContext = Depends(get_context)):
    video = load_visible_video(ctx, videoId, user["_id"])
    record_view(ctx, video["_id"], user["_id"])
    rows = ctx.db.aggregate("videos", video_detail(video["_id"], user["_id"]))
    if not rows:
        raise NotFound("Video not found")
    return api_response(200, rows[0], "Video fetched successfully")


@router.patch("/toggle/publish/{videoId}")
def toggle_publish_status(videoId: str, user: dict = Depends(get_current_user),
                          ctx: AppContext = Depends(get_context)):
    video = _load_video(ctx, videoId)
    ensure_owner(video, user, "publish or unpublish")
    published = not video.get("isPublished", True)
    ctx.db["videos"].update_one(
        {"_id": video["_id"]}, {"$set": {"isPublished": published, "updatedAt": utcnow()}}
    )
    message = "Video published" if published else "Video unpublished"
    return api_response(200, {"id": video["_id"], "isPublished": published}, message)


@router.patch("/{videoId}")
def update_video(
    videoId: str,
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    thumbnail: Optional[UploadFile] = File(None),
    user: dict = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
):
    video = _load_video(ctx, videoId)
    ensure_owner(video, user, "update")

    updates = {}
    if title is not None and title.strip():
        updates["title"] = title.strip()
    if description is not None and description.strip():
        updates["description"] = description.strip()
    if thumbnail is not None and thumbnail.filename:
        updates["thumbnail"] = ctx.media.upload(thumbnail, "image").model_dump(exclude_none=True)
    if not updates:
        raise BadRequest("Nothing to update: title, description or thumbnail is required")

    updates["updatedAt"] = utcnow()
    ctx.db["videos"].update_one({"_id": video["_id"]}, {"$set": updates})
    if "thumbnail" in updates:
        ctx.media.delete((video.get("thumbnail") or {}).get("publicId"))
    return api_response(200, ctx.db.find_by_id("videos", video["_id"]), "Video updated successfully")


@router.delete("/{videoId}")
def delete_video(videoId: str, user: dict = Depends(get_current_user), ctx: AppContext = Depends(get_context)):
    video = _load_video(ctx, videoId)
    ensure_owner(video, user, "delete")
    ctx.db["videos"].delete_one({"_id": video["_id"]})
    cleanup_video(ctx.db, ctx.media, video)
    return api_response(200, {}, "Video deleted successfully")
