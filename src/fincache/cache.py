"""Cached-call wrapper: TTL store + request deduplication."""

from __future__ import annotations

import hashlib
import json
import logging
from collections.abc import Awaitable, Callable
from functools import wraps
from types import TracebackType
from typing import TYPE_CHECKING, Any, ParamSpec, TypeVar, cast

from fincache.adapters.base import AsyncStorageAdapter
from fincache.adapters.memory import AsyncMemoryAdapter
from fincache.dedup import RequestDeduplicator
from fincache.duration import parse_duration
from fincache.keys import scope_prefix, scoped_key
from fincache.store import TTLStore
from fincache.types import Duration, Scope

if TYPE_CHECKING:
    from fincache.config import Settings

logger = logging.getLogger(__name__)

P = ParamSpec("P")
R = TypeVar("R")
T = TypeVar("T")


class ResponseCache:
    """Check the cache, else fetch once per key, then populate the cache."""

    def __init__(
        self,
        store: TTLStore,
        deduplicator: RequestDeduplicator | None = None,
        *,
        default_ttl: Duration = "5m",
    ) -> None:
        self._store = store
        self._dedup = deduplicator if deduplicator is not None else RequestDeduplicator()
        self._default_ttl = parse_duration(default_ttl)

    @property
    def store(self) -> TTLStore:
        return self._store

    async def cached_call(
        self,
        key: str,
        producer: Callable[[], Awaitable[T]],
        ttl: Duration | None = None,
        *,
        force_refresh: bool = False,
        scope: Scope | None = None,
    ) -> T:
        """Return the cached value for ``key`` or produce and cache it.

        Args:
            key: Cache key, namespaced by ``scope``
            producer: Async function fetching fresh data
            ttl: Time to live (default: cache default)
            force_refresh: Skip the cache read and always fetch
            scope: Namespace for the key (default: global scope)

        Returns:
            Cached or freshly produced data. Producer errors propagate and
            nothing is cached for them.
        """
        full_key = scoped_key(key, scope)
        ttl_ms = parse_duration(ttl) if ttl is not None else self._default_ttl

        if not force_refresh:
            entry = await self._store.get_entry(full_key)
            if entry is not None:
                logger.debug("Cache hit for %s", full_key)
                return cast(T, entry.data)

        async def fetch() -> T:
            value = await producer()
            try:
                await self._store.set(full_key, value, ttl_ms)
            except Exception:
                logger.warning("Failed to cache result for %s", full_key, exc_info=True)
            return value

        return await self._dedup.run(full_key, fetch)

    def query(
        self,
        *,
        ttl: Duration | None = None,
        scope: Scope | Callable[..., Scope] | None = None,
    ) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]:
        """Decorator that caches an async function by name and arguments.

        ``scope`` may be a fixed scope or a callable receiving the same
        arguments as the decorated function.
        """

        def decorator(fn: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
            @wraps(fn)
            async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
                key = _make_call_key(
                    f"{fn.__module__}.{fn.__qualname__}", args, kwargs
                )
                resolved = scope(*args, **kwargs) if callable(scope) else scope
                return await self.cached_call(
                    key, lambda: fn(*args, **kwargs), ttl, scope=resolved
                )

            return wrapper

        return decorator

    async def get(self, key: str, *, scope: Scope | None = None) -> Any | None:
        """Raw read of a cached payload."""
        return await self._store.get(scoped_key(key, scope))

    async def set(
        self,
        key: str,
        data: Any,
        ttl: Duration | None = None,
        *,
        scope: Scope | None = None,
    ) -> None:
        """Raw write, e.g. to seed the cache after a mutation."""
        await self._store.set(
            scoped_key(key, scope), data, ttl if ttl is not None else self._default_ttl
        )

    async def invalidate(self, key: str, *, scope: Scope | None = None) -> None:
        """Drop a single cached key."""
        await self._store.invalidate(scoped_key(key, scope))

    async def invalidate_scope(self, scope: Scope) -> int:
        """Drop every key in ``scope`` and its nested scopes (e.g. on logout)."""
        return await self._store.invalidate_prefix(scope_prefix(scope))

    async def clear(self) -> None:
        """Clear all cached entries."""
        await self._store.clear()

    async def flush(self) -> None:
        """Wait for pending persistent writes."""
        await self._store.flush()

    async def dispose(self) -> None:
        """Release the underlying store."""
        await self._store.dispose()

    async def __aenter__(self) -> ResponseCache:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.dispose()


def _make_call_key(fn_name: str, args: tuple[Any, ...], kwargs: dict[str, Any]) -> str:
    """Generate a cache key from function name and arguments."""
    args_hash = hashlib.sha256(
        json.dumps([args, kwargs], sort_keys=True, default=str).encode()
    ).hexdigest()[:16]
    return f"{fn_name}:{args_hash}"


def create_cache(
    settings: Settings | None = None,
    *,
    persistent: AsyncStorageAdapter | None = None,
) -> ResponseCache:
    """Create a response cache from settings.

    Args:
        settings: Configuration (default: environment settings)
        persistent: Persistent layer; built from ``settings.redis_url``
            when omitted and a URL is configured

    Returns:
        ResponseCache with a fresh store and deduplicator
    """
    if settings is None:
        from fincache.config import get_settings

        settings = get_settings()

    if persistent is None and settings.redis_url:
        from fincache.adapters.redis import AsyncRedisAdapter

        persistent = AsyncRedisAdapter.from_url(
            settings.redis_url, prefix=settings.cache_prefix
        )

    store = TTLStore(
        memory=AsyncMemoryAdapter(max_items=settings.memory_max_items),
        persistent=persistent,
    )
    return ResponseCache(store, default_ttl=settings.default_ttl)


__all__ = ["ResponseCache", "create_cache"]
