import math

import mongomock
from bson import ObjectId

from routers.videos import record_view


def test_publish_video_uploads_media(client, make_user, auth_headers, upload, db, settings):
    owner = make_user()
    res = client.post(
        "/api/v1/videos",
        headers=auth_headers(owner),
        data={"title": "My first video", "description": "hello", "duration": "12.5"},
        files={
            "videoFile": upload("clip.mp4", "video/mp4", b"\x00\x00video"),
            "thumbnail": upload("thumb.jpg", "image/jpeg"),
        },
    )
    assert res.status_code == 201
    body = res.json()
    assert body["success"] is True
    video = body["data"]
    assert video["owner"] == str(owner["_id"])
    assert video["views"] == 0 and video["isPublished"] is True
    assert video["videoFile"]["url"].startswith(settings.media_base_url + "/videos/")
    assert db["videos"].count_documents({}) == 1


def test_publish_rejects_wrong_media_type(client, make_user, auth_headers, upload):
    owner = make_user()
    res = client.post(
        "/api/v1/videos",
        headers=auth_headers(owner),
        data={"title": "t", "description": "d"},
        files={
            "videoFile": upload("notes.txt", "text/plain", b"text"),
            "thumbnail": upload("thumb.jpg", "image/jpeg"),
        },
    )
    assert res.status_code == 400
    assert res.json()["success"] is False


def test_requires_authentication(client):
    res = client.get("/api/v1/videos")
    assert res.status_code == 401
    assert res.json() == {
        "statusCode": 401,
        "success": False,
        "message": "Unauthorized request",
        "errors": [],
        "data": None,
    }


def test_feed_pagination_properties(client, make_user, make_video, auth_headers):
    owner = make_user()
    for _ in range(13):
        make_video(owner)
    headers = auth_headers(owner)
    seen = []
    for page in range(1, 4):
        data = client.get("/api/v1/videos", params={"page": page, "limit": 5}, headers=headers).json()["data"]
        assert data["totalItems"] == 13
        assert data["totalPages"] == math.ceil(13 / 5)
        assert len(data["items"]) <= 5
        seen.extend(item["id"] for item in data["items"])
    assert len(seen) == len(set(seen)) == 13


def test_feed_shape_and_sort(client, make_user, make_video, auth_headers):
    owner = make_user()
    make_video(owner, title="low", views=1)
    make_video(owner, title="high", views=50)
    res = client.get("/api/v1/videos", params={"sortBy": "views", "sortType": "desc"}, headers=auth_headers(owner))
    items = res.json()["data"]["items"]
    assert [v["title"] for v in items] == ["high", "low"]
    assert items[0]["owner"]["username"] == owner["username"]
    assert items[0]["likesCount"] == 0
    assert items[0]["thumbnail"].startswith("/static/images/")
    assert "password" not in items[0]["owner"]


def test_feed_rejects_unknown_sort(client, make_user, auth_headers):
    res = client.get("/api/v1/videos", params={"sortBy": "owner"}, headers=auth_headers(make_user()))
    assert res.status_code == 400


def test_feed_rejects_invalid_page(client, make_user, auth_headers):
    res = client.get("/api/v1/videos", params={"page": 0}, headers=auth_headers(make_user()))
    assert res.status_code == 400
    assert res.json()["errors"]


def test_search_is_literal(client, make_user, make_video, auth_headers):
    owner = make_user()
    make_video(owner, title="a.*b literally")
    make_video(owner, title="aXXb")
    res = client.get("/api/v1/videos", params={"query": "a.*b"}, headers=auth_headers(owner))
    titles = [v["title"] for v in res.json()["data"]["items"]]
    assert titles == ["a.*b literally"]


def test_empty_feed_message(client, make_user, auth_headers):
    body = client.get("/api/v1/videos", headers=auth_headers(make_user())).json()
    assert body["data"]["items"] == []
    assert body["message"] == "No videos found"


def test_unpublished_videos_only_visible_to_owner(client, make_user, make_video, auth_headers):
    owner, viewer = make_user(), make_user()
    hidden = make_video(owner, isPublished=False)
    make_video(owner)
    params = {"userId": str(owner["_id"])}
    assert client.get("/api/v1/videos", params=params, headers=auth_headers(viewer)).json()["data"]["totalItems"] == 1
    assert client.get("/api/v1/videos", params=params, headers=auth_headers(owner)).json()["data"]["totalItems"] == 2
    assert client.get(f"/api/v1/videos/{hidden['_id']}", headers=auth_headers(viewer)).status_code == 404


def test_video_detail_records_view_and_history(client, make_user, make_video, auth_headers, db):
    owner, viewer = make_user(), make_user()
    first, second = make_video(owner), make_video(owner)
    headers = auth_headers(viewer)

    res = client.get(f"/api/v1/videos/{first['_id']}", headers=headers)
    assert res.status_code == 200
    detail = res.json()["data"]
    assert detail["views"] == 1
    assert detail["isLiked"] is False
    assert detail["owner"]["subscribersCount"] == 0
    assert detail["owner"]["isSubscribed"] is False

    client.get(f"/api/v1/videos/{second['_id']}", headers=headers)
    client.get(f"/api/v1/videos/{first['_id']}", headers=headers)
    assert db["videos"].find_one({"_id": first["_id"]})["views"] == 1
    assert db["users"].find_one({"_id": viewer["_id"]})["watchHistory"] == [second["_id"], first["_id"]]

    history = client.get("/api/v1/users/history", headers=headers).json()["data"]
    assert [v["id"] for v in history] == [str(first["_id"]), str(second["_id"])]


def test_video_detail_not_found_and_bad_id(client, make_user, auth_headers):
    headers = auth_headers(make_user())
    assert client.get(f"/api/v1/videos/{ObjectId()}", headers=headers).status_code == 404
    assert client.get("/api/v1/videos/not-an-id", headers=headers).status_code == 400


def test_non_owner_cannot_mutate(client, make_user, make_video, auth_headers, db):
    owner, other = make_user(), make_user()
    video = make_video(owner, title="original")
    headers = auth_headers(other)

    assert client.patch(f"/api/v1/videos/{video['_id']}", data={"title": "hacked"}, headers=headers).status_code == 403
    assert client.patch(f"/api/v1/videos/toggle/publish/{video['_id']}", headers=headers).status_code == 403
    assert client.delete(f"/api/v1/videos/{video['_id']}", headers=headers).status_code == 403

    stored = db["videos"].find_one({"_id": video["_id"]})
    assert stored["title"] == "original"
    assert stored["isPublished"] is True


def test_owner_updates_and_toggles(client, make_user, make_video, auth_headers, db):
    owner = make_user()
    video = make_video(owner)
    headers = auth_headers(owner)

    res = client.patch(f"/api/v1/videos/{video['_id']}", data={"title": "renamed"}, headers=headers)
    assert res.status_code == 200
    assert res.json()["data"]["title"] == "renamed"

    res = client.patch(f"/api/v1/videos/toggle/publish/{video['_id']}", headers=headers)
    assert res.json()["data"]["isPublished"] is False
    assert db["videos"].find_one({"_id": video["_id"]})["isPublished"] is False


def test_delete_video_cascades(client, make_user, make_video, auth_headers, db):
    owner, fan = make_user(), make_user()
    video = make_video(owner)
    keep = make_video(owner)
    fan_headers = auth_headers(fan)

    client.post(f"/api/v1/likes/toggle/v/{video['_id']}", headers=fan_headers)
    comment = client.post(f"/api/v1/comments/{video['_id']}", json={"content": "nice"}, headers=fan_headers).json()["data"]
    client.post(f"/api/v1/likes/toggle/c/{comment['id']}", headers=fan_headers)
    client.get(f"/api/v1/videos/{video['_id']}", headers=fan_headers)
    playlist = client.post("/api/v1/playlist", json={"name": "faves"}, headers=fan_headers).json()["data"]
    client.patch(f"/api/v1/playlist/add/{video['_id']}/{playlist['id']}", headers=fan_headers)
    client.patch(f"/api/v1/playlist/add/{keep['_id']}/{playlist['id']}", headers=fan_headers)
    assert db["likes"].count_documents({}) == 2

    res = client.delete(f"/api/v1/videos/{video['_id']}", headers=auth_headers(owner))
    assert res.status_code == 200

    assert db["videos"].find_one({"_id": video["_id"]}) is None
    assert db["comments"].count_documents({"video": video["_id"]}) == 0
    assert db["likes"].count_documents({}) == 0
    assert db["playlists"].find_one({"_id": ObjectId(playlist["id"])})["videos"] == [keep["_id"]]
    assert video["_id"] not in db["users"].find_one({"_id": fan["_id"]})["watchHistory"]


def test_history_skips_videos_unpublished_since(client, make_user, make_video, auth_headers):
    owner, viewer = make_user(), make_user()
    shown, hidden = make_video(owner), make_video(owner)
    headers = auth_headers(viewer)
    for video in (shown, hidden):
        client.get(f"/api/v1/videos/{video['_id']}", headers=headers)
    client.patch(f"/api/v1/videos/toggle/publish/{hidden['_id']}", headers=auth_headers(owner))

    history = client.get("/api/v1/users/history", headers=headers).json()["data"]
    assert [v["id"] for v in history] == [str(shown["_id"])]


def test_repeat_view_is_one_write_to_history(ctx, db, make_user, make_video, monkeypatch):
    owner, viewer = make_user(), make_user()
    first, second = make_video(owner), make_video(owner)
    assert record_view(ctx, first["_id"], viewer["_id"]) is True
    assert record_view(ctx, second["_id"], viewer["_id"]) is True
    real_update_one = mongomock.Collection.update_one
    touched = []

    def tracking_update_one(self, filter, update, *args, **kwargs):
        touched.append(self.name)
        return real_update_one(self, filter, update, *args, **kwargs)

    monkeypatch.setattr(mongomock.Collection, "update_one", tracking_update_one)
    assert record_view(ctx, first["_id"], viewer["_id"]) is False
    monkeypatch.undo()

    assert touched == []
    assert db["users"].find_one({"_id": viewer["_id"]})["watchHistory"] == [second["_id"], first["_id"]]
    assert db["videos"].find_one({"_id": first["_id"]})["views"] == 1


def test_view_without_stored_history(ctx, db, make_user, make_video):
    owner = make_user()
    viewer = make_user()
    db["users"].update_one({"_id": viewer["_id"]}, {"$unset": {"watchHistory": ""}})
    video = make_video(owner)
    assert record_view(ctx, video["_id"], viewer["_id"]) is True
    assert db["users"].find_one({"_id": viewer["_id"]})["watchHistory"] == [video["_id"]]
