"""Base adapter protocol for cache storage layers."""

from typing import Protocol, runtime_checkable

from fincache.types import CacheEntry


@runtime_checkable
class AsyncStorageAdapter(Protocol):
    """Async storage layer interface.

    Adapters store and return entries verbatim; freshness is decided by
    the TTL store on top of them.
    """

    async def get(self, key: str) -> CacheEntry[object] | None:
        """Get a cache entry by key."""
        ...

    async def set(self, key: str, entry: CacheEntry[object]) -> None:
        """Store a cache entry, replacing any existing one."""
        ...

    async def delete(self, key: str) -> None:
        """Delete a cache entry."""
        ...

    async def delete_prefix(self, prefix: str) -> int:
        """Delete every entry whose key starts with ``prefix``."""
        ...

    async def clear(self) -> None:
        """Clear all cached entries."""
        ...

    async def disconnect(self) -> None:
        """Disconnect from the storage backend."""
        ...
