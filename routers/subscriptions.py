from fastapi import APIRouter, Depends

from context import AppContext, get_context
from errors import NotFound, objid
from pagination import PageRequest, page_request, paginate
from pipelines import channel_subscribers, subscribed_channels
from responses import api_response
from security import get_current_user
from toggles import toggle_subscription

router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])


def _require_user(ctx: AppContext, user_id: str, label: str):
    oid = objid(user_id, f"{label} id")
    if not ctx.db.find_by_id("users", oid, {"_id": 1}):
        raise NotFound(f"{label.capitalize()} not found")
    return oid


@router.post("/c/{channelId}")
def toggle_channel_subscription(channelId: str, user: dict = Depends(get_current_user),
                                ctx: AppContext = Depends(get_context)):
    channel = _require_user(ctx, channelId, "channel")
    result = toggle_subscription(ctx.db, user["_id"], channel)
    return api_response(200, {"subscribed": result.active, "subscription": result.document}, result.message)


@router.get("/c/{channelId}")
def get_channel_subscribers(channelId: str, page: PageRequest = Depends(page_request),
                            user: dict = Depends(get_current_user), ctx: AppContext = Depends(get_context)):
    channel = _require_user(ctx, channelId, "channel")
    result = paginate(ctx.db, "subscriptions", channel_subscribers(channel), page)
    message = "Subscribers fetched successfully" if result["totalItems"] else "No subscribers found"
    return api_response(200, result, message)


@router.get("/u/{subscriberId}")
def get_subscribed_channels(subscriberId: str, page: PageRequest = Depends(page_request),
                            user: dict = Depends(get_current_user), ctx: AppContext = Depends(get_context)):
    subscriber = _require_user(ctx, subscriberId, "subscriber")
    result = paginate(ctx.db, "subscriptions", subscribed_channels(subscriber), page)
    message = "Subscribed channels fetched successfully" if result["totalItems"] else "No subscribed channels found"
    return api_response(200, result, message)
