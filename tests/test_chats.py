from app.api.chats.models import Chat


def test_create_individual_chat_defaults_name_to_other_user(client, register_user):
    alice = register_user("alice")
    bob = register_user("bob", full_name="Bob Builder")

    res = client.post("/api/chats", json={"participantIds": [bob["id"]]}, headers=alice["headers"])
    assert res.status_code == 201
    chat = res.json()["data"]
    assert chat["name"] == "Bob Builder"
    assert chat["is_group"] is False
    assert chat["participant_count"] == 2
    assert chat["created_by"] == alice["id"]
    assert all(p["is_admin"] is False for p in chat["participants"])


def test_duplicate_individual_chat_returns_existing(client, register_user, create_chat, db):
    alice = register_user("alice")
    bob = register_user("bob")
    chat = create_chat(alice, [bob["id"]])

    # same pair, opposite direction
    res = client.post("/api/chats", json={"participantIds": [alice["id"]]}, headers=bob["headers"])
    assert res.status_code == 409
    body = res.json()
    assert body["success"] is False
    assert body["message"] == "Chat already exists"
    assert body["data"]["id"] == chat["id"]

    assert db.query(Chat).filter(Chat.is_group.is_(False)).count() == 1


def test_create_chat_with_unknown_participant(client, register_user):
    alice = register_user("alice")

    res = client.post("/api/chats", json={"participantIds": [999]}, headers=alice["headers"])
    assert res.status_code == 400
    assert res.json()["message"] == "One or more participants not found"


def test_individual_chat_needs_exactly_two_participants(client, register_user):
    alice = register_user("alice")
    bob = register_user("bob")
    carol = register_user("carol")

    res = client.post(
        "/api/chats",
        json={"participantIds": [bob["id"], carol["id"]]},
        headers=alice["headers"],
    )
    assert res.status_code == 400


def test_group_creator_is_the_only_admin(client, register_user, create_chat):
    alice = register_user("alice")
    bob = register_user("bob")
    carol = register_user("carol")

    chat = create_chat(alice, [bob["id"], carol["id"], bob["id"]], is_group=True, name="Team")
    assert chat["name"] == "Team"
    assert chat["participant_count"] == 3
    admins = [p["id"] for p in chat["participants"] if p["is_admin"]]
    assert admins == [alice["id"]]


def test_get_chat_requires_membership(client, register_user, create_chat):
    alice = register_user("alice")
    bob = register_user("bob")
    eve = register_user("eve")
    chat = create_chat(alice, [bob["id"]])

    assert client.get(f"/api/chats/{chat['id']}", headers=bob["headers"]).status_code == 200
    assert client.get(f"/api/chats/{chat['id']}", headers=eve["headers"]).status_code == 403
    assert client.get("/api/chats/999", headers=alice["headers"]).status_code == 404


def test_list_chats_orders_by_last_message(client, register_user, create_chat, send_message):
    alice = register_user("alice")
    bob = register_user("bob")
    carol = register_user("carol")
    with_bob = create_chat(alice, [bob["id"]])
    with_carol = create_chat(alice, [carol["id"]])
    quiet = create_chat(alice, [bob["id"], carol["id"]], is_group=True, name="Quiet")

    send_message(bob, with_bob["id"], "first")
    send_message(carol, with_carol["id"], "second")

    res = client.get("/api/chats", headers=alice["headers"])
    assert res.status_code == 200
    data = res.json()["data"]
    assert [c["id"] for c in data["chats"]] == [with_carol["id"], with_bob["id"], quiet["id"]]
    assert data["chats"][0]["last_message"] == "second"
    assert data["chats"][0]["unread_count"] == 1
    assert data["pagination"]["total"] == 3
    assert data["pagination"]["has_next"] is False


def test_non_admin_cannot_add_participant(client, register_user, create_chat):
    alice = register_user("alice")
    bob = register_user("bob")
    carol = register_user("carol")
    chat = create_chat(alice, [bob["id"]], is_group=True, name="Team")

    res = client.post(
        f"/api/chats/{chat['id']}/participants",
        json={"userId": carol["id"]},
        headers=bob["headers"],
    )
    assert res.status_code == 403

    res = client.post(
        f"/api/chats/{chat['id']}/participants",
        json={"userId": carol["id"]},
        headers=alice["headers"],
    )
    assert res.status_code == 201

    res = client.get(f"/api/chats/{chat['id']}", headers=alice["headers"])
    assert carol["id"] in [p["id"] for p in res.json()["data"]["participants"]]


def test_add_participant_rules(client, register_user, create_chat):
    alice = register_user("alice")
    bob = register_user("bob")
    carol = register_user("carol")
    direct = create_chat(alice, [bob["id"]])
    group = create_chat(alice, [bob["id"]], is_group=True, name="Team")

    res = client.post(
        f"/api/chats/{direct['id']}/participants",
        json={"userId": carol["id"]},
        headers=alice["headers"],
    )
    assert res.status_code == 400

    res = client.post(
        f"/api/chats/{group['id']}/participants",
        json={"userId": bob["id"]},
        headers=alice["headers"],
    )
    assert res.status_code == 409


def test_remove_last_admin_rejected_but_second_admin_removable(client, register_user, create_chat):
    alice = register_user("alice")
    bob = register_user("bob")
    carol = register_user("carol")
    chat = create_chat(alice, [bob["id"]], is_group=True, name="Team")

    res = client.delete(f"/api/chats/{chat['id']}/participants/{alice['id']}", headers=alice["headers"])
    assert res.status_code == 400
    assert res.json()["message"] == "Cannot remove the only admin from the chat"

    res = client.post(
        f"/api/chats/{chat['id']}/participants",
        json={"userId": carol["id"], "isAdmin": True},
        headers=alice["headers"],
    )
    assert res.status_code == 201

    res = client.delete(f"/api/chats/{chat['id']}/participants/{carol['id']}", headers=alice["headers"])
    assert res.status_code == 200

    res = client.get(f"/api/chats/{chat['id']}", headers=alice["headers"])
    assert carol["id"] not in [p["id"] for p in res.json()["data"]["participants"]]


def test_member_cannot_remove_others(client, register_user, create_chat):
    alice = register_user("alice")
    bob = register_user("bob")
    carol = register_user("carol")
    chat = create_chat(alice, [bob["id"], carol["id"]], is_group=True, name="Team")

    res = client.delete(f"/api/chats/{chat['id']}/participants/{carol['id']}", headers=bob["headers"])
    assert res.status_code == 403

    res = client.delete(f"/api/chats/{chat['id']}/participants/{bob['id']}", headers=bob["headers"])
    assert res.status_code == 200


def test_leaving_individual_chat_deletes_it(client, register_user, create_chat, send_message, cache):
    alice = register_user("alice")
    bob = register_user("bob")
    chat = create_chat(alice, [bob["id"]])
    message = send_message(alice, chat["id"], "hello")
    assert cache.get_message(message["id"]) is not None

    res = client.post(f"/api/chats/{chat['id']}/leave", headers=bob["headers"])
    assert res.status_code == 200
    assert res.json()["message"] == "Chat deleted successfully"
    assert res.json()["data"]["chat_deleted"] is True

    assert client.get(f"/api/chats/{chat['id']}", headers=alice["headers"]).status_code == 404
    assert cache.get_message(message["id"]) is None


def test_leaving_group(client, register_user, create_chat):
    alice = register_user("alice")
    bob = register_user("bob")
    chat = create_chat(alice, [bob["id"]], is_group=True, name="Team")

    res = client.post(f"/api/chats/{chat['id']}/leave", headers=alice["headers"])
    assert res.status_code == 400

    res = client.post(f"/api/chats/{chat['id']}/leave", headers=bob["headers"])
    assert res.status_code == 200
    assert res.json()["message"] == "Left chat successfully"

    # last member leaving removes the group
    res = client.post(f"/api/chats/{chat['id']}/leave", headers=alice["headers"])
    assert res.status_code == 200
    assert res.json()["data"]["chat_deleted"] is True


def test_update_chat(client, register_user, create_chat):
    alice = register_user("alice")
    bob = register_user("bob")
    chat = create_chat(alice, [bob["id"]], is_group=True, name="Team")

    res = client.put(f"/api/chats/{chat['id']}", json={"name": "Renamed"}, headers=bob["headers"])
    assert res.status_code == 403

    res = client.put(f"/api/chats/{chat['id']}", json={"name": "Renamed"}, headers=alice["headers"])
    assert res.status_code == 200
    assert res.json()["data"]["name"] == "Renamed"

    res = client.put(f"/api/chats/{chat['id']}", json={}, headers=alice["headers"])
    assert res.status_code == 400
