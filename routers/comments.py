from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from cleanup import cleanup_comment
from context import AppContext, get_context
from database import utcnow
from errors import BadRequest, NotFound, ensure_owner, objid
from pagination import PageRequest, page_request, paginate
from pipelines import comment_feed
from responses import api_response
from routers.videos import load_visible_video
from schemas import Comment
from security import get_current_user

router = APIRouter(prefix="/comments", tags=["comments"])


class CommentRequest(BaseModel):
    content: str = Field(..., max_length=1000)

    def text(self) -> str:
        if not self.content.strip():
            raise BadRequest("Content is required")
        return self.content.strip()


def _load_comment(ctx: AppContext, comment_id: str) -> dict:
    comment = ctx.db.find_by_id("comments", objid(comment_id, "comment id"))
    if not comment:
        raise NotFound("Comment not found")
    return comment


def _require_video(ctx: AppContext, video_id: str, user: dict):
    return load_visible_video(ctx, video_id, user["_id"])["_id"]


@router.get("/{videoId}")
def get_video_comments(videoId: str, page: PageRequest = Depends(page_request),
                       user: dict = Depends(get_current_user), ctx: AppContext = Depends(get_context)):
    vid = _require_video(ctx, videoId, user)
    result = paginate(ctx.db, "comments", comment_feed(vid, user["_id"]), page)
    message = "Comments fetched successfully" if result["totalItems"] else "No comments found"
    return api_response(200, result, message)


@router.post("/{videoId}")
def add_comment(videoId: str, payload: CommentRequest, user: dict = Depends(get_current_user),
                ctx: AppContext = Depends(get_context)):
    vid = _require_video(ctx, videoId, user)
    comment = Comment(content=payload.text(), video=vid, owner=user["_id"])
    doc = ctx.db.create_document("comments", comment)
    return api_response(201, doc, "Comment added successfully")


@router.patch("/c/{commentId}")
def update_comment(commentId: str, payload: CommentRequest, user: dict = Depends(get_current_user),
                   ctx: AppContext = Depends(get_context)):
    comment = _load_comment(ctx, commentId)
    ensure_owner(comment, user, "update")
    ctx.db["comments"].update_one(
        {"_id": comment["_id"]}, {"$set": {"content": payload.text(), "updatedAt": utcnow()}}
    )
    return api_response(200, ctx.db.find_by_id("comments", comment["_id"]), "Comment updated successfully")


@router.delete("/c/{commentId}")
def delete_comment(commentId: str, user: dict = Depends(get_current_user), ctx: AppContext = Depends(get_context)):
    comment = _load_comment(ctx, commentId)
    ensure_owner(comment, user, "delete")
    ctx.db["comments"].delete_one({"_id": comment["_id"]})
    cleanup_comment(ctx.db, comment["_id"])
    return api_response(200, {}, "Comment deleted successfully")
