import os
from datetime import timedelta

from app.api.auth.utils import create_access_token
from app.core.config import settings

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


def test_profile_get_and_update(client, register_user):
    alice = register_user("alice")

    res = client.get("/api/users/profile", headers=alice["headers"])
    assert res.status_code == 200
    assert res.json()["data"]["username"] == "alice"

    res = client.put("/api/users/profile", json={"bio": "Curious", "full_name": "Alice L."}, headers=alice["headers"])
    assert res.status_code == 200
    assert res.json()["data"]["bio"] == "Curious"
    assert res.json()["data"]["full_name"] == "Alice L."


def test_profile_update_needs_a_field(client, register_user):
    alice = register_user("alice")

    res = client.put("/api/users/profile", json={}, headers=alice["headers"])
    assert res.status_code == 400
    assert res.json()["errors"] == ["No fields to update"]


def test_public_profile(client, register_user, create_chat):
    alice = register_user("alice")
    bob = register_user("bob")
    chat = create_chat(alice, [bob["id"]])

    res = client.get(f"/api/users/{bob['id']}")
    assert res.status_code == 200
    profile = res.json()["data"]
    assert profile["username"] == "bob"
    assert "email" not in profile
    assert profile["direct_chat_id"] is None

    res = client.get(f"/api/users/{bob['id']}", headers=alice["headers"])
    assert res.json()["data"]["direct_chat_id"] == chat["id"]

    assert client.get("/api/users/999").status_code == 404


def test_public_profile_ignores_bad_tokens(client, register_user, create_chat):
    alice = register_user("alice")
    bob = register_user("bob")
    create_chat(alice, [bob["id"]])

    expired = create_access_token(alice["id"], "alice@example.com", expires_delta=timedelta(minutes=-1))
    for token in ("garbage", expired):
        res = client.get(f"/api/users/{bob['id']}", headers={"Authorization": f"Bearer {token}"})
        assert res.status_code == 200
        assert res.json()["data"]["direct_chat_id"] is None

    client.post("/api/auth/logout", headers=alice["headers"])
    res = client.get(f"/api/users/{bob['id']}", headers=alice["headers"])
    assert res.status_code == 200
    assert res.json()["data"]["direct_chat_id"] is None


def test_list_users_excludes_caller(client, register_user):
    alice = register_user("alice")
    register_user("bob")
    register_user("carol")

    res = client.get("/api/users", headers=alice["headers"])
    assert res.status_code == 200
    usernames = [u["username"] for u in res.json()["data"]["users"]]
    assert sorted(usernames) == ["bob", "carol"]

    res = client.get("/api/users?search=car", headers=alice["headers"])
    assert [u["username"] for u in res.json()["data"]["users"]] == ["carol"]


def test_upload_and_delete_profile_picture(client, register_user):
    alice = register_user("alice")

    res = client.post(
        "/api/users/profile-picture",
        files={"file": ("avatar.png", PNG_BYTES, "image/png")},
        headers=alice["headers"],
    )
    assert res.status_code == 200
    url = res.json()["data"]["profile_picture_url"]
    assert url.startswith("/uploads/") and url.endswith(".png")

    stored = os.path.join(settings.UPLOAD_DIR, os.path.basename(url))
    assert os.path.exists(stored)
    assert client.get(url).content == PNG_BYTES

    res = client.delete("/api/users/profile-picture", headers=alice["headers"])
    assert res.status_code == 200
    assert res.json()["data"]["profile_picture_url"] is None
    assert not os.path.exists(stored)

    res = client.delete("/api/users/profile-picture", headers=alice["headers"])
    assert res.status_code == 404


def test_upload_rejects_non_images(client, register_user):
    alice = register_user("alice")

    res = client.post(
        "/api/users/profile-picture",
        files={"file": ("notes.txt", b"hello", "text/plain")},
        headers=alice["headers"],
    )
    assert res.status_code == 400
