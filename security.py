"""
Passwords, tokens and the authenticated principal.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from bson import ObjectId
from bson.errors import InvalidId
from fastapi import Depends, Request
from passlib.context import CryptContext

from config import Settings
from context import AppContext, get_context
from errors import Unauthorized

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

ACCESS_COOKIE = "accessToken"
REFRESH_COOKIE = "refreshToken"

# loaded with every authenticated request, never sent back out
PRINCIPAL_PROJECTION = {"password": 0, "refreshToken": 0}


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    if not hashed:
        return False
    return pwd_context.verify(password, hashed)


def _encode(payload: dict, secret: str, expires: timedelta) -> str:
    now = datetime.now(timezone.utc)
    to_encode = {**payload, "iat": int(now.timestamp()), "exp": int((now + expires).timestamp())}
    return jwt.encode(to_encode, secret, algorithm="HS256")


def _decode(token: str, secret: str) -> dict:
    try:
        return jwt.decode(token, secret, algorithms=["HS256"])
    except jwt.ExpiredSignatureError:
        raise Unauthorized("Token expired")
    except jwt.InvalidTokenError:
        raise Unauthorized("Invalid token")


def create_access_token(user: dict, settings: Settings) -> str:
    return _encode(
        {"sub": str(user["_id"]), "username": user["username"], "email": user["email"], "type": "access"},
        settings.access_token_secret,
        timedelta(minutes=settings.access_token_expiry_minutes),
    )


def create_refresh_token(user: dict, settings: Settings) -> str:
    return _encode(
        {"sub": str(user["_id"]), "type": "refresh"},
        settings.refresh_token_secret,
        timedelta(days=settings.refresh_token_expiry_days),
    )


def decode_access_token(token: str, settings: Settings) -> dict:
    data = _decode(token, settings.access_token_secret)
    if data.get("type") != "access":
        raise Unauthorized("Invalid token")
    return data


def decode_refresh_token(token: str, settings: Settings) -> dict:
    data = _decode(token, settings.refresh_token_secret)
    if data.get("type") != "refresh":
        raise Unauthorized("Invalid refresh token")
    return data


def subject_id(claims: dict) -> ObjectId:
    try:
        return ObjectId(claims.get("sub"))
    except (InvalidId, TypeError):
        raise Unauthorized("Invalid token")


def _bearer_token(request: Request) -> Optional[str]:
    token = request.cookies.get(ACCESS_COOKIE)
    if token:
        return token
    header = request.headers.get("Authorization", "")
    scheme, _, credentials = header.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return None


def get_current_user(request: Request, ctx: AppContext = Depends(get_context)) -> dict:
    token = _bearer_token(request)
    if not token:
        raise Unauthorized("Unauthorized request")
    claims = decode_access_token(token, ctx.settings)
    user = ctx.db.find_by_id("users", subject_id(claims), PRINCIPAL_PROJECTION)
    if not user:
        raise Unauthorized("Invalid access token")
    return user
