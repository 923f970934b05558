from app.database.cache import get_cache
from app.main import app


def test_set_get_delete(cache, fake_redis):
    assert cache.set_message(1, {"id": 1, "content": "hi"}) is True
    assert fake_redis.expirations["message:1"] == 3600
    assert cache.get_message(1) == {"id": 1, "content": "hi"}

    assert cache.delete_message(1) is True
    assert cache.get_message(1) is None


def test_update_only_touches_cached_entries(cache, fake_redis):
    assert cache.update_message(2, {"content": "edited"}) is False
    assert "message:2" not in fake_redis.store

    cache.set_message(2, {"id": 2, "content": "hi", "is_edited": False})
    assert cache.update_message(2, {"content": "edited", "is_edited": True}) is True
    assert cache.get_message(2) == {"id": 2, "content": "edited", "is_edited": True}


def test_corrupt_entry_reads_as_miss(cache, fake_redis):
    fake_redis.store["message:3"] = "{not json"
    assert cache.get_message(3) is None


def test_errors_are_swallowed(broken_cache):
    cache = broken_cache

    assert cache.get_message(1) is None
    assert cache.set_message(1, {"id": 1}) is False
    assert cache.update_message(1, {"content": "x"}) is False
    assert cache.delete_message(1) is False
    assert cache.ping() is False


def test_send_survives_cache_outage(client, register_user, create_chat, broken_cache):
    alice = register_user("alice")
    bob = register_user("bob")
    chat = create_chat(alice, [bob["id"]])
    app.dependency_overrides[get_cache] = lambda: broken_cache

    res = client.post("/api/messages", json={"chatId": chat["id"], "content": "still works"}, headers=alice["headers"])
    assert res.status_code == 201

    res = client.get(f"/api/messages/chat/{chat['id']}", headers=bob["headers"])
    assert [m["content"] for m in res.json()["data"]["messages"]] == ["still works"]
