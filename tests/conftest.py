import io

import mongomock
import pytest
from fastapi.testclient import TestClient

from config import Settings
from context import AppContext
from main import create_app
from schemas import MediaAsset, User, Video
from security import create_access_token, hash_password

PASSWORD = "secret123"


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_name="vidshare_test",
        upload_dir=str(tmp_path / "uploads"),
        access_token_secret="test-access",
        refresh_token_secret="test-refresh",
    )


@pytest.fixture
def ctx(settings):
    context = AppContext(settings, client=mongomock.MongoClient())
    context.connect()
    yield context
    context.close()


@pytest.fixture
def db(ctx):
    return ctx.db


@pytest.fixture
def client(ctx):
    with TestClient(create_app(ctx)) as c:
        yield c


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(username=None, **overrides):
        counter["n"] += 1
        username = username or f"user{counter['n']}"
        user = User(
            username=username,
            email=overrides.pop("email", f"{username}@example.com"),
            fullName=overrides.pop("fullName", username.title()),
            avatar=MediaAsset(url=f"/static/images/{username}.png", publicId=f"images/{username}.png"),
            password=hash_password(overrides.pop("password", PASSWORD)),
        )
        return db.create_document("users", {**user.model_dump(exclude_none=True), **overrides})

    return _make


@pytest.fixture
def auth_headers(settings):
    def _headers(user):
        return {"Authorization": f"Bearer {create_access_token(user, settings)}"}

    return _headers


@pytest.fixture
def make_video(db):
    counter = {"n": 0}

    def _make(owner, **overrides):
        counter["n"] += 1
        n = counter["n"]
        video = Video(
            title=overrides.pop("title", f"Video {n}"),
            description=overrides.pop("description", f"Description {n}"),
            videoFile=MediaAsset(url=f"/static/videos/v{n}.mp4", publicId=f"videos/v{n}.mp4"),
            thumbnail=MediaAsset(url=f"/static/images/t{n}.jpg", publicId=f"images/t{n}.jpg"),
            duration=overrides.pop("duration", 60.0),
            owner=owner["_id"],
        )
        return db.create_document("videos", {**video.model_dump(exclude_none=True), **overrides})

    return _make


@pytest.fixture
def upload():
    def _file(name="file.png", content_type="image/png", data=b"\x89PNG fake"):
        return (name, io.BytesIO(data), content_type)

    return _file
