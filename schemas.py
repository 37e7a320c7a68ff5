"""
Database Schemas for VidShare

Each Pydantic model maps to a MongoDB collection. The collection name is the
lowercase plural of the class name.

Collections:
- User -> users
- Video -> videos
- Comment -> comments
- Like -> likes
- Tweet -> tweets
- Playlist -> playlists
- Subscription -> subscriptions

References between collections are stored as ObjectIds. Timestamps
(createdAt / updatedAt) are stamped by database.create_document.
"""

from typing import List, Literal, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel, ConfigDict, EmailStr, Field, ValidationError, field_validator

from errors import BadRequest


class Document(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)


class MediaAsset(BaseModel):
    url: str
    publicId: str = Field(..., description="Opaque id used to delete the asset later")
    duration: Optional[float] = None


class User(Document):
    username: str = Field(..., min_length=3, max_length=30)
    email: EmailStr
    fullName: str = Field(..., min_length=1, max_length=80)
    avatar: MediaAsset
    coverImage: Optional[MediaAsset] = None
    watchHistory: List[ObjectId] = Field(default_factory=list)
    password: str = Field(..., description="Bcrypt hash")
    refreshToken: Optional[str] = None

    @field_validator("username")
    @classmethod
    def normalize_username(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()


class Video(Document):
    title: str = Field(..., min_length=1, max_length=120)
    description: str = Field(..., min_length=1)
    videoFile: MediaAsset
    thumbnail: MediaAsset
    duration: float = Field(0, ge=0)
    views: int = Field(0, ge=0)
    isPublished: bool = True
    owner: ObjectId


class Comment(Document):
    content: str = Field(..., min_length=1, max_length=1000)
    video: ObjectId
    owner: ObjectId


LikeKind = Literal["video", "comment", "tweet"]


class LikeTarget(Document):
    """What a like points at: exactly one (kind, id) pair."""
    kind: LikeKind
    id: ObjectId

    @classmethod
    def parse(cls, kind: str, id_str: str) -> "LikeTarget":
        try:
            return cls(kind=kind, id=ObjectId(id_str))
        except (InvalidId, TypeError, ValidationError):
            raise BadRequest(f"Invalid {kind} id")


class Like(Document):
    kind: LikeKind
    target: ObjectId
    likedBy: ObjectId

    @classmethod
    def for_target(cls, target: LikeTarget, liked_by: ObjectId) -> "Like":
        return cls(kind=target.kind, target=target.id, likedBy=liked_by)


class Tweet(Document):
    content: str = Field(..., min_length=1, max_length=280)
    owner: ObjectId


class Playlist(Document):
    name: str = Field(..., min_length=1, max_length=100)
    description: str = ""
    videos: List[ObjectId] = Field(default_factory=list)
    owner: ObjectId


class Subscription(Document):
    subscriber: ObjectId = Field(..., description="The user who follows")
    channel: ObjectId = Field(..., description="The user being followed")
