from datetime import datetime

from app.api.health.schemas import ServiceStatus, SystemHealth
from app.database.cache import MessageCache
from app.database.database import check_connection


def get_system_health(cache: MessageCache) -> SystemHealth:
    database_ok = check_connection()
    cache_ok = cache.ping()
    return SystemHealth(
        status="ok" if database_ok and cache_ok else "degraded",
        timestamp=datetime.utcnow(),
        services=ServiceStatus(
            database="healthy" if database_ok else "unhealthy",
            cache="healthy" if cache_ok else "unhealthy",
        )
    )
