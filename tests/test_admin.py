import pytest

from app.api.chats.models import ChatParticipant
from app.api.messages.models import Message
from app.api.users.models import User, UserSession


@pytest.fixture
def admin(register_user, make_admin):
    user = register_user("root")
    make_admin(user["id"])
    return user


def test_admin_routes_require_admin(client, register_user):
    alice = register_user("alice")

    assert client.get("/api/admin/users").status_code == 401
    res = client.get("/api/admin/users", headers=alice["headers"])
    assert res.status_code == 403
    assert res.json()["message"] == "Admin access required"


def test_list_users_with_search_and_sort(client, admin, register_user):
    register_user("alice")
    register_user("bob")

    res = client.get("/api/admin/users?sortBy=username&sortOrder=asc", headers=admin["headers"])
    assert res.status_code == 200
    data = res.json()["data"]
    assert [u["username"] for u in data["users"]] == ["alice", "bob", "root"]
    assert data["pagination"]["total"] == 3

    res = client.get("/api/admin/users?search=BOB@", headers=admin["headers"])
    assert [u["username"] for u in res.json()["data"]["users"]] == ["bob"]

    # unknown sort fields fall back to created_at
    res = client.get("/api/admin/users?sortBy=password_hash", headers=admin["headers"])
    assert res.status_code == 200


def test_user_details(client, admin, register_user, create_chat, send_message):
    alice = register_user("alice")
    bob = register_user("bob")
    chat = create_chat(alice, [bob["id"]])
    send_message(alice, chat["id"], "hello")

    res = client.get(f"/api/admin/users/{alice['id']}", headers=admin["headers"])
    assert res.status_code == 200
    details = res.json()["data"]
    assert details["total_chats"] == 1
    assert details["total_messages"] == 1
    assert details["active_sessions"] == 1
    assert {a["type"] for a in details["recent_activity"]} == {"message_sent", "login"}

    assert client.get("/api/admin/users/999", headers=admin["headers"]).status_code == 404


def test_update_user(client, admin, register_user):
    alice = register_user("alice")
    register_user("bob")

    res = client.put(
        f"/api/admin/users/{alice['id']}",
        json={"email": "bob@example.com"},
        headers=admin["headers"],
    )
    assert res.status_code == 409

    res = client.put(
        f"/api/admin/users/{alice['id']}",
        json={"fullName": "Alice Admin", "isAdmin": True},
        headers=admin["headers"],
    )
    assert res.status_code == 200
    assert res.json()["data"]["full_name"] == "Alice Admin"
    assert res.json()["data"]["is_admin"] is True

    res = client.put(f"/api/admin/users/{alice['id']}", json={}, headers=admin["headers"])
    assert res.status_code == 400


def test_delete_user_cascades(client, admin, register_user, create_chat, send_message, db, cache):
    alice = register_user("alice")
    bob = register_user("bob")
    chat = create_chat(alice, [bob["id"]])
    message = send_message(alice, chat["id"], "bye")

    res = client.delete(f"/api/admin/users/{admin['id']}", headers=admin["headers"])
    assert res.status_code == 400

    res = client.delete(f"/api/admin/users/{alice['id']}", headers=admin["headers"])
    assert res.status_code == 200
    assert res.json()["data"]["deleted_username"] == "alice"

    assert db.query(User).filter(User.id == alice["id"]).first() is None
    assert db.query(Message).filter(Message.sender_id == alice["id"]).count() == 0
    assert db.query(ChatParticipant).filter(ChatParticipant.user_id == alice["id"]).count() == 0
    assert db.query(UserSession).filter(UserSession.user_id == alice["id"]).count() == 0
    assert cache.get_message(message["id"]) is None

    assert client.delete(f"/api/admin/users/{alice['id']}", headers=admin["headers"]).status_code == 404


def test_ban_invalidates_sessions(client, admin, register_user, db):
    alice = register_user("alice")

    res = client.post(f"/api/admin/users/{admin['id']}/ban", json={"banned": True}, headers=admin["headers"])
    assert res.status_code == 400

    res = client.post(
        f"/api/admin/users/{alice['id']}/ban",
        json={"banned": True, "reason": "spam"},
        headers=admin["headers"],
    )
    assert res.status_code == 200
    assert res.json()["data"] == {"user_id": alice["id"], "banned": True, "reason": "spam"}

    assert client.get("/api/auth/profile", headers=alice["headers"]).status_code == 401
    assert db.query(UserSession).filter(
        UserSession.user_id == alice["id"], UserSession.is_active.is_(True)
    ).count() == 0

    res = client.post("/api/auth/login", json={"email": "alice@example.com", "password": "password123"})
    assert res.status_code == 403
    assert res.json()["data"]["reason"] == "spam"

    res = client.post(f"/api/admin/users/{alice['id']}/ban", json={"banned": False}, headers=admin["headers"])
    assert res.status_code == 200
    assert res.json()["message"] == "User unbanned successfully"

    res = client.post("/api/auth/login", json={"email": "alice@example.com", "password": "password123"})
    assert res.status_code == 200


def test_stats(client, admin, register_user, create_chat, send_message):
    alice = register_user("alice")
    bob = register_user("bob")
    chat = create_chat(alice, [bob["id"]])
    create_chat(alice, [bob["id"]], is_group=True, name="Team")
    send_message(alice, chat["id"], "hello")
    send_message(bob, chat["id"], "photo", messageType="image", mediaUrl="/uploads/x.png")

    res = client.get("/api/admin/stats", headers=admin["headers"])
    assert res.status_code == 200
    stats = res.json()["data"]
    assert stats["users"]["total_users"] == 3
    assert stats["users"]["admin_users"] == 1
    assert stats["users"]["new_users_week"] == 3
    assert stats["messages"]["total_messages"] == 2
    assert stats["messages"]["messages_today"] == 2
    assert stats["messages"]["media_messages"] == 1
    assert stats["chats"]["group_chats"] == 1
    assert stats["chats"]["individual_chats"] == 1
    assert len(stats["recent_activity"]) == 5

    res = client.get("/api/admin/stats?startDate=2000-01-01T00:00:00&endDate=2000-01-02T00:00:00",
                     headers=admin["headers"])
    assert res.json()["data"]["users"]["total_users"] == 0


def test_logs(client, admin, register_user):
    alice = register_user("alice")
    client.post("/api/auth/logout", headers=alice["headers"])

    res = client.get("/api/admin/logs?limit=10", headers=admin["headers"])
    assert res.status_code == 200
    logs = res.json()["data"]["logs"]
    assert len(logs) == 2
    statuses = {log["username"]: log["status"] for log in logs}
    assert statuses == {"root": "active", "alice": "inactive"}


def test_logs_default_limit(client, admin):
    res = client.get("/api/admin/logs", headers=admin["headers"])
    assert res.status_code == 200
    data = res.json()["data"]
    assert data["limit"] == 50
    assert set(data) == {"logs", "total", "limit"}


def test_dashboard(client, admin, register_user, create_chat, send_message):
    alice = register_user("alice")
    bob = register_user("bob")
    chat = create_chat(alice, [bob["id"]])
    send_message(alice, chat["id"], "one")
    send_message(alice, chat["id"], "two")
    send_message(bob, chat["id"], "three")

    res = client.get("/api/admin/dashboard", headers=admin["headers"])
    assert res.status_code == 200
    dashboard = res.json()["data"]
    assert sum(day["count"] for day in dashboard["user_growth"]) == 3
    assert sum(day["count"] for day in dashboard["message_activity"]) == 3
    assert sum(day["count"] for day in dashboard["chat_growth"]) == 1
    assert dashboard["top_chatters"][0] == {"username": "alice", "full_name": "Alice Tester", "message_count": 2}
    assert len(dashboard["recent_users"]) == 3
    assert dashboard["system_health"]["status"] == "ok"
