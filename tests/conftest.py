import os
import tempfile

_tmp_dir = tempfile.mkdtemp(prefix="messenger-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_tmp_dir, 'test.db')}"
os.environ["UPLOAD_DIR"] = os.path.join(_tmp_dir, "uploads")
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["DB_AUTO_CREATE"] = "False"

import pytest
import redis
from fastapi.testclient import TestClient

from app.database.cache import MessageCache, get_cache
from app.database.database import Base, SessionLocal, engine
from app.main import app


class FakeRedis:
    """Dict-backed stand-in for the few redis.Redis calls the cache makes."""

    def __init__(self):
        self.store = {}
        self.expirations = {}

    def get(self, key):
        return self.store.get(key)

    def set(self, key, value, ex=None):
        self.store[key] = value
        self.expirations[key] = ex
        return True

    def delete(self, *keys):
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
        return removed

    def ping(self):
        return True


class BrokenRedis:
    """Every call fails the way an unreachable server does."""

    def _fail(self, *args, **kwargs):
        raise redis.ConnectionError("Connection refused")

    get = set = delete = ping = _fail


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def cache(fake_redis):
    return MessageCache(fake_redis, ttl_seconds=3600)


@pytest.fixture
def client(cache):
    Base.metadata.create_all(bind=engine)
    app.dependency_overrides[get_cache] = lambda: cache
    yield TestClient(app)
    app.dependency_overrides.clear()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db(client):
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def register_user(client):
    def _register(username, password="password123", email=None, full_name=None):
        res = client.post("/api/auth/register", json={
            "username": username,
            "email": email or f"{username}@example.com",
            "password": password,
            "fullName": full_name or f"{username.capitalize()} Tester",
        })
        assert res.status_code == 201, res.text
        data = res.json()["data"]
        return {
            "id": data["user"]["id"],
            "token": data["token"],
            "headers": {"Authorization": f"Bearer {data['token']}"},
        }

    return _register


@pytest.fixture
def make_admin(db):
    from app.api.users.models import User

    def _make_admin(user_id):
        db.query(User).filter(User.id == user_id).update({"is_admin": True})
        db.commit()

    return _make_admin


@pytest.fixture
def create_chat(client):
    def _create(owner, participant_ids, is_group=False, name=None):
        body = {"participantIds": participant_ids, "isGroup": is_group}
        if name is not None:
            body["name"] = name
        res = client.post("/api/chats", json=body, headers=owner["headers"])
        assert res.status_code == 201, res.text
        return res.json()["data"]

    return _create


@pytest.fixture
def send_message(client):
    def _send(sender, chat_id, content, **extra):
        res = client.post(
            "/api/messages",
            json={"chatId": chat_id, "content": content, **extra},
            headers=sender["headers"],
        )
        assert res.status_code == 201, res.text
        return res.json()["data"]

    return _send


@pytest.fixture
def broken_cache():
    return MessageCache(BrokenRedis())
