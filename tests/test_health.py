from app.database.cache import get_cache
from app.main import app


def test_health_ok(client):
    res = client.get("/health")
    assert res.status_code == 200
    body = res.json()
    assert body["status"] == "ok"
    assert body["services"] == {"database": "healthy", "cache": "healthy"}
    assert body["timestamp"]


def test_health_degraded_when_cache_is_down(client, broken_cache):
    app.dependency_overrides[get_cache] = lambda: broken_cache

    res = client.get("/health")
    assert res.status_code == 200
    assert res.json()["status"] == "degraded"
    assert res.json()["services"]["cache"] == "unhealthy"


def test_unknown_route_uses_error_envelope(client):
    res = client.get("/api/nothing-here")
    assert res.status_code == 404
    assert res.json() == {"success": False, "message": "Not Found"}
