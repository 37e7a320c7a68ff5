import os

from conftest import PASSWORD


def register(client, upload, **fields):
    data = {"fullName": "Jane Doe", "email": "Jane@Example.com", "username": "  JaneDoe ", "password": "pw123456"}
    data.update(fields)
    return client.post("/api/v1/users/register", data=data, files={"avatar": upload("me.png")})


def test_register_normalizes_and_hides_secrets(client, upload, db):
    res = register(client, upload)
    assert res.status_code == 201
    user = res.json()["data"]
    assert user["username"] == "janedoe"
    assert user["email"] == "jane@example.com"
    assert user["avatar"]["url"].startswith("/static/images/")
    assert "password" not in user and "refreshToken" not in user
    assert db["users"].find_one({"username": "janedoe"})["password"] != "pw123456"


def test_register_requires_avatar(client):
    res = client.post(
        "/api/v1/users/register",
        data={"fullName": "x", "email": "x@example.com", "username": "xuser", "password": "pw123456"},
    )
    assert res.status_code == 400


def test_register_duplicate_is_conflict(client, upload):
    assert register(client, upload).status_code == 201
    res = register(client, upload, email="other@example.com")
    assert res.status_code == 409


def test_register_invalid_email(client, upload, db):
    res = register(client, upload, email="not-an-email")
    assert res.status_code == 400
    assert res.json()["errors"][0]["field"] == "email"
    assert db["users"].count_documents({}) == 0


def test_login_issues_tokens_and_refresh_rotates(client, make_user):
    user = make_user("alice")
    res = client.post("/api/v1/users/login", json={"username": "Alice", "password": PASSWORD})
    assert res.status_code == 200
    data = res.json()["data"]
    assert data["user"]["username"] == "alice"
    assert data["accessToken"] and data["refreshToken"]

    me = client.get("/api/v1/users/current-user", headers={"Authorization": f"Bearer {data['accessToken']}"})
    assert me.json()["data"]["id"] == str(user["_id"])

    rotated = client.post("/api/v1/users/refresh-token", json={"refreshToken": data["refreshToken"]})
    assert rotated.status_code == 200
    assert rotated.json()["data"]["accessToken"]


def test_login_rejects_bad_password(client, make_user):
    make_user("bob")
    res = client.post("/api/v1/users/login", json={"email": "bob@example.com", "password": "wrong"})
    assert res.status_code == 401
    assert client.post("/api/v1/users/login", json={"password": "x"}).status_code == 400


def test_logout_revokes_refresh_token(client, make_user, auth_headers, db):
    user = make_user("carol")
    tokens = client.post("/api/v1/users/login", json={"username": "carol", "password": PASSWORD}).json()["data"]
    client.cookies.clear()
    assert client.post("/api/v1/users/logout", headers=auth_headers(user)).status_code == 200
    assert "refreshToken" not in db["users"].find_one({"_id": user["_id"]})
    res = client.post("/api/v1/users/refresh-token", json={"refreshToken": tokens["refreshToken"]})
    assert res.status_code == 401


def test_invalid_token_is_unauthorized(client):
    res = client.get("/api/v1/users/current-user", headers={"Authorization": "Bearer nope"})
    assert res.status_code == 401


def test_change_password(client, make_user, auth_headers):
    user = make_user("dave")
    headers = auth_headers(user)
    bad = client.post("/api/v1/users/change-password", json={"oldPassword": "nope", "newPassword": "newpass1"},
                      headers=headers)
    assert bad.status_code == 400
    ok = client.post("/api/v1/users/change-password", json={"oldPassword": PASSWORD, "newPassword": "newpass1"},
                     headers=headers)
    assert ok.status_code == 200
    login = client.post("/api/v1/users/login", json={"username": "dave", "password": "newpass1"})
    assert login.status_code == 200


def test_update_account(client, make_user, auth_headers):
    user = make_user("erin")
    make_user("frank")
    headers = auth_headers(user)
    res = client.patch("/api/v1/users/update-account", json={"fullName": "Erin E"}, headers=headers)
    assert res.json()["data"]["fullName"] == "Erin E"
    taken = client.patch("/api/v1/users/update-account", json={"email": "frank@example.com"}, headers=headers)
    assert taken.status_code == 409
    assert client.patch("/api/v1/users/update-account", json={}, headers=headers).status_code == 400


def test_avatar_replacement_deletes_old_asset(client, make_user, auth_headers, upload, settings):
    user = make_user("gina")
    headers = auth_headers(user)
    first = client.patch("/api/v1/users/avatar", files={"avatar": upload("a.png")}, headers=headers).json()["data"]
    old_public_id = first["avatar"]["publicId"]
    old_path = os.path.join(settings.upload_dir, old_public_id)
    assert os.path.exists(old_path)

    second = client.patch("/api/v1/users/avatar", files={"avatar": upload("b.png")}, headers=headers).json()["data"]
    assert second["avatar"]["publicId"] != old_public_id
    assert not os.path.exists(old_path)


def test_channel_profile(client, make_user, make_video, auth_headers):
    channel, fan = make_user("henry"), make_user()
    make_video(channel)
    client.post(f"/api/v1/subscriptions/c/{channel['_id']}", headers=auth_headers(fan))

    res = client.get("/api/v1/users/c/HENRY", headers=auth_headers(fan))
    profile = res.json()["data"]
    assert profile["username"] == "henry"
    assert profile["subscribersCount"] == 1
    assert profile["channelsSubscribedToCount"] == 0
    assert profile["videosCount"] == 1
    assert profile["isSubscribed"] is True

    assert client.get("/api/v1/users/c/nobody", headers=auth_headers(fan)).status_code == 404
