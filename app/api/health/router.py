from fastapi import APIRouter, Depends

from app.api.health.schemas import SystemHealth
from app.api.health.service import get_system_health
from app.database.cache import MessageCache, get_cache

router = APIRouter(tags=["health"])


@router.get("/health", response_model=SystemHealth)
async def health(cache: MessageCache = Depends(get_cache)):
    """Reachability of the database and the cache"""
    return get_system_health(cache)
