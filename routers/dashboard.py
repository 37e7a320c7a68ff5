from fastapi import APIRouter, Depends

from context import AppContext, get_context
from pagination import PageRequest, page_request, paginate
from pipelines import channel_videos
from responses import api_response
from security import get_current_user
from stats import channel_stats

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


@router.get("/stats")
def get_channel_stats(user: dict = Depends(get_current_user), ctx: AppContext = Depends(get_context)):
    return api_response(200, channel_stats(ctx.db, user["_id"]), "Channel stats fetched successfully")


@router.get("/videos")
def get_channel_videos(page: PageRequest = Depends(page_request), user: dict = Depends(get_current_user),
                       ctx: AppContext = Depends(get_context)):
    result = paginate(ctx.db, "videos", channel_videos(user["_id"]), page)
    message = "Channel videos fetched successfully" if result["totalItems"] else "No videos found"
    return api_response(200, result, message)
