"""Redis storage adapter (persistent layer)."""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from fincache.types import CacheEntry

logger = logging.getLogger(__name__)

_GLOB_SPECIAL = re.compile(r"([\\*?\[\]])")


def _escape_glob(value: str) -> str:
    """Escape a literal string for use in a Redis MATCH pattern."""
    return _GLOB_SPECIAL.sub(r"\\\1", value)


def _serialize_entry(entry: CacheEntry[object]) -> str:
    """Serialize a cache entry to JSON."""
    return json.dumps(entry.to_payload())


def _deserialize_entry(key: str, data: bytes | str) -> CacheEntry[object]:
    """Deserialize JSON to a cache entry."""
    if isinstance(data, bytes):
        data = data.decode("utf-8")
    obj = json.loads(data)
    return CacheEntry(
        key=key,
        data=obj["data"],
        timestamp=int(obj["timestamp"]),
        ttl=int(obj["ttl"]),
    )


class AsyncRedisAdapter:
    """Async Redis storage adapter."""

    def __init__(
        self,
        client: Any,  # redis.asyncio.Redis
        *,
        prefix: str = "fincache",
    ) -> None:
        self._client = client
        self._prefix = prefix

    @classmethod
    def from_url(cls, url: str, *, prefix: str = "fincache") -> AsyncRedisAdapter:
        """Create an adapter with its own connection pool."""
        import redis.asyncio

        return cls(redis.asyncio.Redis.from_url(url), prefix=prefix)

    def _cache_key(self, key: str) -> str:
        """Generate full Redis key for cache entries."""
        return f"{self._prefix}:cache:{key}"

    async def get(self, key: str) -> CacheEntry[object] | None:
        """Get a cache entry by key."""
        full_key = self._cache_key(key)
        data = await self._client.get(full_key)
        if data is None:
            return None
        try:
            return _deserialize_entry(key, data)
        except (ValueError, KeyError, TypeError):
            # Written by an incompatible version; drop it
            logger.warning("Discarding undecodable cache entry %s", full_key)
            await self._client.delete(full_key)
            return None

    async def set(self, key: str, entry: CacheEntry[object]) -> None:
        """Store a cache entry; Redis drops it on its own once the TTL passes."""
        await self._client.set(
            self._cache_key(key),
            _serialize_entry(entry),
            pxat=entry.timestamp + entry.ttl + 1,
        )

    async def delete(self, key: str) -> None:
        """Delete a cache entry."""
        await self._client.delete(self._cache_key(key))

    async def delete_prefix(self, prefix: str) -> int:
        """Delete all entries under a key prefix."""
        return await self._delete_matching(
            f"{_escape_glob(self._cache_key(prefix))}*"
        )

    async def clear(self) -> None:
        """Clear all cached entries."""
        await self._delete_matching(f"{_escape_glob(self._prefix)}:cache:*")

    async def disconnect(self) -> None:
        """Close the Redis connection."""
        await self._client.aclose()

    async def _delete_matching(self, pattern: str) -> int:
        # Use SCAN to find and delete matching keys
        deleted = 0
        cursor: int = 0
        while True:
            result = await self._client.scan(cursor, match=pattern, count=100)
            cursor = result[0]
            keys = result[1]
            if keys:
                deleted += await self._client.delete(*keys)
            if cursor == 0:
                break
        return deleted
