from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from context import AppContext, get_context
from database import utcnow
from errors import BadRequest, NotFound, ensure_owner, objid
from pipelines import playlist_detail, user_playlists
from responses import api_response
from routers.videos import load_visible_video
from schemas import Playlist
from security import get_current_user

router = APIRouter(prefix="/playlist", tags=["playlists"])


class PlaylistRequest(BaseModel):
    name: str = Field(..., max_length=100)
    description: str = ""


class PlaylistUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = None


def _load_playlist(ctx: AppContext, playlist_id: str) -> dict:
    playlist = ctx.db.find_by_id("playlists", objid(playlist_id, "playlist id"))
    if not playlist:
        raise NotFound("Playlist not found")
    return playlist


def _detail(ctx: AppContext, playlist_id, viewer) -> dict:
    rows = ctx.db.aggregate("playlists", playlist_detail(playlist_id, viewer))
    if not rows:
        raise NotFound("Playlist not found")
    return rows[0]


@router.post("")
def create_playlist(payload: PlaylistRequest, user: dict = Depends(get_current_user),
                    ctx: AppContext = Depends(get_context)):
    if not payload.name.strip():
        raise BadRequest("Playlist name is required")
    playlist = Playlist(name=payload.name.strip(), description=payload.description.strip(), owner=user["_id"])
    doc = ctx.db.create_document("playlists", playlist)
    return api_response(201, doc, "Playlist created successfully")


@router.get("/user/{userId}")
def get_user_playlists(userId: str, user: dict = Depends(get_current_user), ctx: AppContext = Depends(get_context)):
    owner = objid(userId, "user id")
    if not ctx.db.find_by_id("users", owner, {"_id": 1}):
        raise NotFound("User not found")
    rows = ctx.db.aggregate("playlists", user_playlists(owner, user["_id"]))
    message = "User playlists fetched successfully" if rows else "No playlists found"
    return api_response(200, rows, message)


@router.get("/{playlistId}")
def get_playlist(playlistId: str, user: dict = Depends(get_current_user), ctx: AppContext = Depends(get_context)):
    return api_response(200, _detail(ctx, objid(playlistId, "playlist id"), user["_id"]), "Playlist fetched successfully")


@router.patch("/add/{videoId}/{playlistId}")
def add_video_to_playlist(videoId: str, playlistId: str, user: dict = Depends(get_current_user),
                          ctx: AppContext = Depends(get_context)):
    playlist = _load_playlist(ctx, playlistId)
    ensure_owner(playlist, user, "modify")
    vid = load_visible_video(ctx, videoId, user["_id"])["_id"]
    ctx.db["playlists"].update_one(
        {"_id": playlist["_id"]}, {"$addToSet": {"videos": vid}, "$set": {"updatedAt": utcnow()}}
    )
    return api_response(200, _detail(ctx, playlist["_id"], user["_id"]), "Video added to playlist")


@router.patch("/remove/{videoId}/{playlistId}")
def remove_video_from_playlist(videoId: str, playlistId: str, user: dict = Depends(get_current_user),
                               ctx: AppContext = Depends(get_context)):
    playlist = _load_playlist(ctx, playlistId)
    ensure_owner(playlist, user, "modify")
    vid = objid(videoId, "video id")
    if vid not in playlist.get("videos", []):
        raise NotFound("Video is not in this playlist")
    ctx.db["playlists"].update_one(
        {"_id": playlist["_id"]}, {"$pull": {"videos": vid}, "$set": {"updatedAt": utcnow()}}
    )
    return api_response(200, _detail(ctx, playlist["_id"], user["_id"]), "Video removed from playlist")


@router.patch("/{playlistId}")
def update_playlist(playlistId: str, payload: PlaylistUpdateRequest, user: dict = Depends(get_current_user),
                    ctx: AppContext = Depends(get_context)):
    playlist = _load_playlist(ctx, playlistId)
    ensure_owner(playlist, user, "update")
    updates = {}
    if payload.name is not None and payload.name.strip():
        updates["name"] = payload.name.strip()
    if payload.description is not None:
        updates["description"] = payload.description.strip()
    if not updates:
        raise BadRequest("Name or description is required")
    updates["updatedAt"] = utcnow()
    ctx.db["playlists"].update_one({"_id": playlist["_id"]}, {"$set": updates})
    return api_response(200, ctx.db.find_by_id("playlists", playlist["_id"]), "Playlist updated successfully")


@router.delete("/{playlistId}")
def delete_playlist(playlistId: str, user: dict = Depends(get_current_user), ctx: AppContext = Depends(get_context)):
    playlist = _load_playlist(ctx, playlistId)
    ensure_owner(playlist, user, "delete")
    ctx.db["playlists"].delete_one({"_id": playlist["_id"]})
    return api_response(200, {}, "Playlist deleted successfully")
