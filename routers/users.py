from typing import Optional

import structlog
from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from pydantic import BaseModel, EmailStr, Field, ValidationError
from pymongo.errors import DuplicateKeyError

from context import AppContext, get_context
from database import utcnow
from errors import BadRequest, Conflict, NotFound, Unauthorized, field_errors
from pipelines import watch_history, channel_profile
from responses import api_response
from schemas import MediaAsset, User
from security import (
    ACCESS_COOKIE,
    PRINCIPAL_PROJECTION,
    REFRESH_COOKIE,
    create_access_token,
    create_refresh_token,
    decode_refresh_token,
    get_current_user,
    hash_password,
    subject_id,
    verify_password,
)

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/users", tags=["users"])

COOKIE_OPTIONS = {"httponly": True, "secure": True, "samesite": "none"}


# -------------------- Models --------------------
class LoginRequest(BaseModel):
    email: Optional[EmailStr] = None
    username: Optional[str] = None
    password: str


class RefreshRequest(BaseModel):
    refreshToken: Optional[str] = None


class ChangePasswordRequest(BaseModel):
    oldPassword: str
    newPassword: str = Field(..., min_length=6)


class UpdateAccountRequest(BaseModel):
    fullName: Optional[str] = Field(None, min_length=1, max_length=80)
    email: Optional[EmailStr] = None


# -------------------- Helpers --------------------

def _issue_tokens(ctx: AppContext, user: dict) -> dict:
    access_token = create_access_token(user, ctx.settings)
    refresh_token = create_refresh_token(user, ctx.settings)
    ctx.db["users"].update_one({"_id": user["_id"]}, {"$set": {"refreshToken": refresh_token}})
    return {"accessToken": access_token, "refreshToken": refresh_token}


def _with_cookies(response, tokens: dict):
    response.set_cookie(ACCESS_COOKIE, tokens["accessToken"], **COOKIE_OPTIONS)
    response.set_cookie(REFRESH_COOKIE, tokens["refreshToken"], **COOKIE_OPTIONS)
    return response


def _replace_media(ctx: AppContext, user: dict, field: str, file: UploadFile) -> dict:
    asset = ctx.media.upload(file, "image")
    ctx.db["users"].update_one(
        {"_id": user["_id"]},
        {"$set": {field: asset.model_dump(exclude_none=True), "updatedAt": utcnow()}},
    )
    old = user.get(field) or {}
    ctx.media.delete(old.get("publicId"))
    return ctx.db.find_by_id("users", user["_id"], PRINCIPAL_PROJECTION)


# -------------------- Auth --------------------
@router.post("/register")
def register(
    fullName: str = Form(...),
    email: str = Form(...),
    username: str = Form(...),
    password: str = Form(...),
    avatar: Optional[UploadFile] = File(None),
    coverImage: Optional[UploadFile] = File(None),
    ctx: AppContext = Depends(get_context),
):
    if any(not field.strip() for field in (fullName, email, username, password)):
        raise BadRequest("All fields are required")
    if avatar is None or not avatar.filename:
        raise BadRequest("Avatar file is required")

    username = username.strip().lower()
    email = email.strip().lower()
    if ctx.db["users"].find_one({"$or": [{"username": username}, {"email": email}]}):
        raise Conflict("User with email or username already exists")

    avatar_asset = ctx.media.upload(avatar, "image")
    cover_asset: Optional[MediaAsset] = None
    if coverImage is not None and coverImage.filename:
        cover_asset = ctx.media.upload(coverImage, "image")

    try:
        user = User(
            username=username,
            email=email,
            fullName=fullName.strip(),
            avatar=avatar_asset,
            coverImage=cover_asset,
            password=hash_password(password),
        )
        doc = ctx.db.create_document("users", user.model_dump(exclude_none=True))
    except (ValidationError, DuplicateKeyError) as e:
        ctx.media.delete(avatar_asset.publicId)
        if cover_asset is not None:
            ctx.media.delete(cover_asset.publicId)
        if isinstance(e, DuplicateKeyError):
            raise Conflict("User with email or username already exists")
        raise BadRequest("Invalid user details", errors=field_errors(e.errors()))

    logger.info("user_registered", user=str(doc["_id"]))
    return api_response(201, doc, "User registered successfully")


@router.post("/login")
def login(payload: LoginRequest, ctx: AppContext = Depends(get_context)):
    if not payload.email and not (payload.username and payload.username.strip()):
        raise BadRequest("Username or email is required")
    if payload.email:
        query = {"email": payload.email.lower()}
    else:
        query = {"username": payload.username.strip().lower()}
    user = ctx.db["users"].find_one(query)
    if not user:
        raise NotFound("User does not exist")
    if not verify_password(payload.password, user.get("password", "")):
        raise Unauthorized("Invalid user credentials")

    tokens = _issue_tokens(ctx, user)
    response = api_response(200, {"user": user, **tokens}, "User logged in successfully")
    return _with_cookies(response, tokens)


@router.post("/logout")
def logout(user: dict = Depends(get_current_user), ctx: AppContext = Depends(get_context)):
    ctx.db["users"].update_one({"_id": user["_id"]}, {"$unset": {"refreshToken": ""}})
    response = api_response(200, {}, "User logged out")
    response.delete_cookie(ACCESS_COOKIE, httponly=True, secure=True, samesite="none")
    response.delete_cookie(REFRESH_COOKIE, httponly=True, secure=True, samesite="none")
    return response


@router.post("/refresh-token")
def refresh_token(request: Request, payload: Optional[RefreshRequest] = None,
                  ctx: AppContext = Depends(get_context)):
    incoming = request.cookies.get(REFRESH_COOKIE) or (payload.refreshToken if payload else None)
    if not incoming:
        raise Unauthorized("Unauthorized request")
    claims = decode_refresh_token(incoming, ctx.settings)
    user = ctx.db.find_by_id("users", subject_id(claims))
    if not user:
        raise Unauthorized("Invalid refresh token")
    if user.get("refreshToken") != incoming:
        raise Unauthorized("Refresh token is expired or used")

    tokens = _issue_tokens(ctx, user)
    return _with_cookies(api_response(200, tokens, "Access token refreshed"), tokens)


# -------------------- Account --------------------
@router.post("/change-password")
def change_password(payload: ChangePasswordRequest, user: dict = Depends(get_current_user),
                    ctx: AppContext = Depends(get_context)):
    stored = ctx.db.find_by_id("users", user["_id"], {"password": 1})
    if not verify_password(payload.oldPassword, (stored or {}).get("password", "")):
        raise BadRequest("Invalid old password")
    ctx.db["users"].update_one(
        {"_id": user["_id"]},
        {"$set": {"password": hash_password(payload.newPassword), "updatedAt": utcnow()}},
    )
    return api_response(200, {}, "Password changed successfully")


@router.get("/current-user")
def current_user(user: dict = Depends(get_current_user)):
    return api_response(200, user, "Current user fetched successfully")


@router.patch("/update-account")
def update_account(payload: UpdateAccountRequest, user: dict = Depends(get_current_user),
                   ctx: AppContext = Depends(get_context)):
    updates = {}
    if payload.fullName is not None and payload.fullName.strip():
        updates["fullName"] = payload.fullName.strip()
    if payload.email is not None:
        email = payload.email.lower()
        if ctx.db["users"].find_one({"email": email, "_id": {"$ne": user["_id"]}}):
            raise Conflict("Email is already in use")
        updates["email"] = email
    if not updates:
        raise BadRequest("fullName or email is required")

    updates["updatedAt"] = utcnow()
    try:
        ctx.db["users"].update_one({"_id": user["_id"]}, {"$set": updates})
    except DuplicateKeyError:
        raise Conflict("Email is already in use")
    updated = ctx.db.find_by_id("users", user["_id"], PRINCIPAL_PROJECTION)
    return api_response(200, updated, "Account details updated successfully")


@router.patch("/avatar")
def update_avatar(avatar: UploadFile = File(...), user: dict = Depends(get_current_user),
                  ctx: AppContext = Depends(get_context)):
    updated = _replace_media(ctx, user, "avatar", avatar)
    return api_response(200, updated, "Avatar updated successfully")


@router.patch("/cover-image")
def update_cover_image(coverImage: UploadFile = File(...), user: dict = Depends(get_current_user),
                       ctx: AppContext = Depends(get_context)):
    updated = _replace_media(ctx, user, "coverImage", coverImage)
    return api_response(200, updated, "Cover image updated successfully")


# -------------------- Channel --------------------
@router.get("/c/{username}")
def get_channel_profile(username: str, user: dict = Depends(get_current_user),
                        ctx: AppContext = Depends(get_context)):
    if not username.strip():
        raise BadRequest("Username is missing")
    rows = ctx.db.aggregate("users", channel_profile(username, user["_id"]))
    if not rows:
        raise NotFound("Channel does not exist")
    return api_response(200, rows[0], "User channel fetched successfully")


@router.get("/history")
def get_watch_history(user: dict = Depends(get_current_user), ctx: AppContext = Depends(get_context)):
    ids = user.get("watchHistory") or []
    rows = ctx.db.aggregate("videos", watch_history(ids, user["_id"])) if ids else []
    by_id = {row["_id"]: row for row in rows}
    # most recently watched first; deleted or unpublished videos are skipped
    ordered = [by_id[i] for i in reversed(ids) if i in by_id]
    return api_response(200, ordered, "Watch history fetched successfully")
