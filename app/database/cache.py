import json
import logging
from typing import Any, Dict, Optional

import redis

from app.core.config import settings

logger = logging.getLogger(__name__)


class MessageCache:
    """
    Best-effort message cache on top of Redis.
    Never the source of truth: every failure is logged and swallowed.
    """

    def __init__(self, client: redis.Redis, ttl_seconds: int = settings.MESSAGE_CACHE_TTL_SECONDS):
        self.client = client
        self.ttl_seconds = ttl_seconds

    @staticmethod
    def key(message_id: int) -> str:
        return f"message:{message_id}"

    def get_message(self, message_id: int) -> Optional[Dict[str, Any]]:
        try:
            raw = self.client.get(self.key(message_id))
            return json.loads(raw) if raw else None
        except (redis.RedisError, ValueError) as e:
            logger.warning(f"Redis GET error for message {message_id}: {e}")
            return None

    def set_message(self, message_id: int, payload: Dict[str, Any]) -> bool:
        try:
            self.client.set(
                self.key(message_id),
                json.dumps(payload, default=str),
                ex=self.ttl_seconds
            )
            return True
        except (redis.RedisError, TypeError) as e:
            logger.warning(f"Redis SET error for message {message_id}: {e}")
            return False

    def update_message(self, message_id: int, changes: Dict[str, Any]) -> bool:
        """Refreshes a cached message only if it is still cached."""
        cached = self.get_message(message_id)
        if cached is None:
            return False
        cached.update(changes)
        return self.set_message(message_id, cached)

    def delete_message(self, message_id: int) -> bool:
        try:
            self.client.delete(self.key(message_id))
            return True
        except redis.RedisError as e:
            logger.warning(f"Redis DEL error for message {message_id}: {e}")
            return False

    def ping(self) -> bool:
        try:
            return bool(self.client.ping())
        except redis.RedisError as e:
            logger.warning(f"Redis ping failed: {e}")
            return False


redis_client = redis.Redis.from_url(
    settings.REDIS_URL,
    decode_responses=True,
    socket_connect_timeout=2,
    socket_timeout=2,
)

message_cache = MessageCache(redis_client)


def get_cache() -> MessageCache:
    return message_cache
