from fastapi import APIRouter, Depends

from context import AppContext, get_context
from errors import NotFound
from pagination import PageRequest, page_request, paginate
from pipelines import liked_videos
from responses import api_response
from routers.videos import load_visible_video
from schemas import LikeTarget
from security import get_current_user
from toggles import toggle_like

router = APIRouter(prefix="/likes", tags=["likes"])

TARGET_COLLECTIONS = {"video": "videos", "comment": "comments", "tweet": "tweets"}


def _toggle(ctx: AppContext, user: dict, kind: str, target_id: str):
    target = LikeTarget.parse(kind, target_id)
    if target.kind == "video":
        load_visible_video(ctx, target_id, user["_id"])
    elif not ctx.db.find_by_id(TARGET_COLLECTIONS[target.kind], target.id, {"_id": 1}):
        raise NotFound(f"{kind.capitalize()} not found")
    result = toggle_like(ctx.db, user["_id"], target)
    return api_response(200, {"isLiked": result.active, "like": result.document}, result.message)


@router.post("/toggle/v/{videoId}")
def toggle_video_like(videoId: str, user: dict = Depends(get_current_user), ctx: AppContext = Depends(get_context)):
    return _toggle(ctx, user, "video", videoId)


@router.post("/toggle/c/{commentId}")
def toggle_comment_like(commentId: str, user: dict = Depends(get_current_user),
                        ctx: AppContext = Depends(get_context)):
    return _toggle(ctx, user, "comment", commentId)


@router.post("/toggle/t/{tweetId}")
def toggle_tweet_like(tweetId: str, user: dict = Depends(get_current_user), ctx: AppContext = Depends(get_context)):
    return _toggle(ctx, user, "tweet", tweetId)


@router.get("/videos")
def get_liked_videos(page: PageRequest = Depends(page_request), user: dict = Depends(get_current_user),
                     ctx: AppContext = Depends(get_context)):
    result = paginate(ctx.db, "likes", liked_videos(user["_id"]), page)
    message = "Liked videos fetched successfully" if result["totalItems"] else "No liked videos found"
    return api_response(200, result, message)
