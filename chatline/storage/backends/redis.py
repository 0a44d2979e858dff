"""Redis implementation of KeyValueBackend."""

import redis.asyncio as redis

from chatline.errors import StorageBackendError
from chatline.observability.logging import get_logger
from chatline.storage.backend import KeyValueBackend

logger = get_logger(__name__)


class RedisBackend(KeyValueBackend):
    """Redis implementation of KeyValueBackend.

    Every key is written with an optional TTL so abandoned visitor data
    expires on its own.
    """

    def __init__(
        self,
        client: redis.Redis,
        ttl_seconds: int | None = None,
    ) -> None:
        """Initialize Redis backend.

        Args:
            client: Redis client instance (decode_responses=True expected)
            ttl_seconds: Expiry applied on every write, None for no expiry
        """
        self._client = client
        self._ttl_seconds = ttl_seconds

    @classmethod
    def from_url(cls, url: str, ttl_seconds: int | None = None) -> "RedisBackend":
        """Create a backend from a redis:// URL."""
        return cls(redis.from_url(url, decode_responses=True), ttl_seconds=ttl_seconds)

    async def get(self, key: str) -> str | None:
        """Get the value stored under key."""
        try:
            value = await self._client.get(key)
        except redis.RedisError as e:
            logger.error("redis_get_failed", key=key, error=str(e))
            raise StorageBackendError(f"Failed to read {key}", cause=e) from e
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    async def set(self, key: str, value: str) -> None:
        """Store value under key."""
        try:
            await self._client.set(key, value, ex=self._ttl_seconds)
        except redis.RedisError as e:
            logger.error("redis_set_failed", key=key, error=str(e))
            raise StorageBackendError(f"Failed to write {key}", cause=e) from e

    async def delete(self, key: str) -> bool:
        """Delete key."""
        try:
            return await self._client.delete(key) > 0
        except redis.RedisError as e:
            logger.error("redis_delete_failed", key=key, error=str(e))
            raise StorageBackendError(f"Failed to delete {key}", cause=e) from e

    async def close(self) -> None:
        """Close the underlying connection pool."""
        await self._client.aclose()
