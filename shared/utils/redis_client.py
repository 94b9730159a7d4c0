"""
Standardized Redis client utilities for NewsDesk services.
Redis streams carry the trigger messages consumed by the external
scraper and news-API fetcher jobs.
"""

import json
from typing import Any, Dict, Optional

import redis

from shared.app_logging.logger import get_logger
from shared.config.settings import get_redis_url, get_settings

logger = get_logger(__name__)


class RedisClient:
    """Lazily connected Redis client with consistent error logging."""

    def __init__(self, service_name: str):
        self.service_name = service_name
        self.settings = get_settings()
        self._client: Optional[redis.Redis] = None
        self._logger = get_logger(f"{service_name}.redis")

    def _serialize_value(self, value: Any) -> Any:
        """Convert values to Redis-compatible stream field types."""
        if value is None:
            return ""
        if isinstance(value, bool):
            return int(value)
        if isinstance(value, (bytes, str, int, float)):
            return value
        if isinstance(value, (list, dict)):
            return json.dumps(value)
        if hasattr(value, "isoformat"):
            return value.isoformat()
        return str(value)

    def _get_client(self) -> redis.Redis:
        """Get or create the underlying client."""
        if self._client is None:
            try:
                self._client = redis.from_url(
                    get_redis_url(),
                    decode_responses=True,
                    socket_timeout=self.settings.service.redis_timeout,
                    retry_on_timeout=True,
                    max_connections=20,
                    health_check_interval=30,
                )
                self._client.ping()
                self._logger.info("Connected to Redis successfully")
            except Exception as e:
                self._client = None
                self._logger.error(f"Failed to connect to Redis: {e}")
                raise

        return self._client

    def ping(self) -> bool:
        """Test Redis connection."""
        try:
            return bool(self._get_client().ping())
        except Exception as e:
            self._logger.error(f"Redis ping failed: {e}")
            return False

    def xadd(
        self,
        stream: str,
        fields: Dict[str, Any],
        maxlen: Optional[int] = None,
        approximate: bool = True,
    ) -> str:
        """Add message to a Redis stream with optional trimming; returns the entry id."""
        try:
            client = self._get_client()
            encoded_fields = {k: self._serialize_value(v) for k, v in fields.items()}
            message_id = client.xadd(
                stream,
                encoded_fields,
                maxlen=maxlen,
                approximate=approximate,
            )
            if isinstance(message_id, bytes):
                message_id = message_id.decode()
            return message_id
        except Exception as e:
            self._logger.error(f"Failed to add to stream {stream}: {e}")
            raise

    def close(self):
        """Close Redis connection."""
        if self._client:
            self._client.close()
            self._client = None
            self._logger.info("Redis connection closed")


# Global Redis client instances for each service
_redis_clients: Dict[str, RedisClient] = {}


def get_redis_client(service_name: str) -> RedisClient:
    """Get or create Redis client for a service."""
    if service_name not in _redis_clients:
        _redis_clients[service_name] = RedisClient(service_name)
    return _redis_clients[service_name]


def close_all_redis_clients():
    """Close all Redis client connections."""
    for client in _redis_clients.values():
        client.close()
    _redis_clients.clear()
