from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from cleanup import cleanup_tweet
from context import AppContext, get_context
from database import utcnow
from errors import BadRequest, NotFound, ensure_owner, objid
from pagination import PageRequest, page_request, paginate
from pipelines import tweet_feed
from responses import api_response
from schemas import Tweet
from security import get_current_user

router = APIRouter(prefix="/tweets", tags=["tweets"])


class TweetRequest(BaseModel):
    content: str = Field(..., max_length=280)


def _content(payload: TweetRequest) -> str:
    content = payload.content.strip()
    if not content:
        raise BadRequest("Tweet content is required")
    return content


def _load_tweet(ctx: AppContext, tweet_id: str) -> dict:
    tweet = ctx.db.find_by_id("tweets", objid(tweet_id, "tweet id"))
    if not tweet:
        raise NotFound("Tweet not found")
    return tweet


@router.post("")
def create_tweet(payload: TweetRequest, user: dict = Depends(get_current_user), ctx: AppContext = Depends(get_context)):
    doc = ctx.db.create_document("tweets", Tweet(content=_content(payload), owner=user["_id"]))
    return api_response(201, doc, "Tweet created successfully")


@router.get("/user/{userId}")
def get_user_tweets(userId: str, page: PageRequest = Depends(page_request),
                    user: dict = Depends(get_current_user), ctx: AppContext = Depends(get_context)):
    owner = objid(userId, "user id")
    if not ctx.db.find_by_id("users", owner, {"_id": 1}):
        raise NotFound("User not found")
    result = paginate(ctx.db, "tweets", tweet_feed(owner, user["_id"]), page)
    message = "Tweets fetched successfully" if result["totalItems"] else "No tweets found"
    return api_response(200, result, message)


@router.patch("/{tweetId}")
def update_tweet(tweetId: str, payload: TweetRequest, user: dict = Depends(get_current_user),
                 ctx: AppContext = Depends(get_context)):
    tweet = _load_tweet(ctx, tweetId)
    ensure_owner(tweet, user, "update")
    ctx.db["tweets"].update_one(
        {"_id": tweet["_id"]}, {"$set": {"content": _content(payload), "updatedAt": utcnow()}}
    )
    return api_response(200, ctx.db.find_by_id("tweets", tweet["_id"]), "Tweet updated successfully")


@router.delete("/{tweetId}")
def delete_tweet(tweetId: str, user: dict = Depends(get_current_user), ctx: AppContext = Depends(get_context)):
    tweet = _load_tweet(ctx, tweetId)
    ensure_owner(tweet, user, "delete")
    ctx.db["tweets"].delete_one({"_id": tweet["_id"]})
    cleanup_tweet(ctx.db, tweet["_id"])
    return api_response(200, {}, "Tweet deleted successfully")
