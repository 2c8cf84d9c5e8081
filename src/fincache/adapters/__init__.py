"""Storage adapters for the fincache TTL store."""

from contextlib import suppress

from fincache.adapters.base import AsyncStorageAdapter
from fincache.adapters.memory import AsyncMemoryAdapter

# Optional adapters - only available when dependencies are installed
with suppress(ImportError):
    from fincache.adapters.redis import AsyncRedisAdapter

__all__ = [
    "AsyncMemoryAdapter",
    "AsyncRedisAdapter",
    "AsyncStorageAdapter",
]
