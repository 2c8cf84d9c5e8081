"""In-memory storage adapter."""

import asyncio
from collections import OrderedDict

from fincache.types import CacheEntry


class AsyncMemoryAdapter:
    """Async in-memory storage layer, unbounded unless ``max_items`` is set."""

    def __init__(self, max_items: int | None = None) -> None:
        if max_items is not None and max_items <= 0:
            raise ValueError("max_items must be positive")
        self._cache: OrderedDict[str, CacheEntry[object]] = OrderedDict()
        self._max_items = max_items
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._cache)

    async def get(self, key: str) -> CacheEntry[object] | None:
        """Get a cache entry by key."""
        async with self._lock:
            entry = self._cache.get(key)
            if entry is not None:
                self._cache.move_to_end(key)  # LRU touch
            return entry

    async def set(self, key: str, entry: CacheEntry[object]) -> None:
        """Store a cache entry."""
        async with self._lock:
            self._cache[key] = entry
            self._cache.move_to_end(key)
            if self._max_items and len(self._cache) > self._max_items:
                self._cache.popitem(last=False)

    async def delete(self, key: str) -> None:
        """Delete a cache entry."""
        async with self._lock:
            self._cache.pop(key, None)

    async def delete_prefix(self, prefix: str) -> int:
        """Delete all entries under a key prefix."""
        async with self._lock:
            doomed = [key for key in self._cache if key.startswith(prefix)]
            for key in doomed:
                del self._cache[key]
            return len(doomed)

    async def clear(self) -> None:
        """Clear all cached entries."""
        async with self._lock:
            self._cache.clear()

    async def disconnect(self) -> None:
        """Disconnect from the storage backend (no-op for memory)."""
        pass
