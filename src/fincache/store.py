"""Two-tier TTL store.

Reads hit the memory layer first and fall back to the persistent layer,
promoting hits. Writes land in memory immediately and reach the
persistent layer through a tracked background task. Persistent-layer
failures are logged and reported, never raised to the caller: every
cached payload can be re-fetched from the backend.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from types import TracebackType
from typing import Any

from fincache.adapters.base import AsyncStorageAdapter
from fincache.adapters.memory import AsyncMemoryAdapter
from fincache.duration import parse_duration
from fincache.errors import CacheSerializationError
from fincache.types import CacheEntry, Duration, now_ms

logger = logging.getLogger(__name__)

PersistErrorCallback = Callable[[str, BaseException], None]


class TTLStore:
    """Key to (data, timestamp, ttl) mapping with lazy expiry."""

    def __init__(
        self,
        memory: AsyncStorageAdapter | None = None,
        persistent: AsyncStorageAdapter | None = None,
        *,
        clock: Callable[[], int] = now_ms,
        on_persist_error: PersistErrorCallback | None = None,
    ) -> None:
        self._memory = memory if memory is not None else AsyncMemoryAdapter()
        self._persistent = persistent
        self._clock = clock
        self._on_persist_error = on_persist_error
        self._pending_writes: dict[asyncio.Task[None], str] = {}
        self.last_persist_error: BaseException | None = None

    @property
    def persistent(self) -> AsyncStorageAdapter | None:
        return self._persistent

    @property
    def pending_writes(self) -> int:
        """Number of persistent writes still in flight."""
        return len(self._pending_writes)

    async def get_entry(self, key: str) -> CacheEntry[Any] | None:
        """Return the entry for ``key`` if it is still fresh."""
        now = self._clock()
        entry = await self._memory.get(key)
        if entry is not None:
            if entry.is_fresh(now):
                return entry
            await self._evict(key)
            return None

        if self._persistent is None:
            return None

        try:
            entry = await self._persistent.get(key)
        except Exception:
            logger.warning("Persistent cache read failed for %s", key, exc_info=True)
            return None
        if entry is None:
            return None
        if not entry.is_fresh(now):
            await self._delete_persistent(key)
            return None

        await self._memory.set(key, entry)
        return entry

    async def get(self, key: str) -> Any | None:
        """Return the cached payload, or None when absent or expired."""
        entry = await self.get_entry(key)
        return None if entry is None else entry.data

    async def set(
        self, key: str, data: Any, ttl: Duration
    ) -> asyncio.Task[None] | None:
        """Store ``data`` under ``key``, overwriting any existing entry.

        Returns the background task writing to the persistent layer, if any.
        """
        try:
            json.dumps(data)
        except (TypeError, ValueError) as e:
            raise CacheSerializationError(
                f"Cache data for {key!r} is not JSON-serializable: {e}"
            ) from e

        entry: CacheEntry[object] = CacheEntry(
            key=key, data=data, timestamp=self._clock(), ttl=parse_duration(ttl)
        )
        await self._memory.set(key, entry)

        if self._persistent is None:
            return None
        task = asyncio.create_task(self._persistent.set(key, entry))
        self._pending_writes[task] = key
        task.add_done_callback(lambda t: self._on_write_done(key, t))
        return task

    async def invalidate(self, key: str) -> None:
        """Remove ``key`` from every layer regardless of TTL."""
        await self.flush()
        await self._evict(key)

    async def invalidate_prefix(self, prefix: str) -> int:
        """Remove every key starting with ``prefix``."""
        await self.flush()
        removed = await self._memory.delete_prefix(prefix)
        if self._persistent is not None:
            try:
                removed = max(removed, await self._persistent.delete_prefix(prefix))
            except Exception:
                logger.warning(
                    "Persistent cache prefix delete failed for %s", prefix, exc_info=True
                )
        return removed

    async def clear(self) -> None:
        """Remove all entries from every layer."""
        await self.flush()
        await self._memory.clear()
        if self._persistent is not None:
            try:
                await self._persistent.clear()
            except Exception:
                logger.warning("Persistent cache clear failed", exc_info=True)

    async def flush(self) -> None:
        """Wait for every pending persistent write to finish."""
        while self._pending_writes:
            await asyncio.gather(*list(self._pending_writes), return_exceptions=True)

    async def dispose(self) -> None:
        """Flush pending writes and disconnect both layers."""
        await self.flush()
        await self._memory.disconnect()
        if self._persistent is not None:
            await self._persistent.disconnect()

    async def __aenter__(self) -> TTLStore:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.dispose()

    # -------------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------------

    async def _evict(self, key: str) -> None:
        await self._memory.delete(key)
        await self._delete_persistent(key)

    async def _delete_persistent(self, key: str) -> None:
        if self._persistent is None:
            return
        # A write still in flight would land after the delete and revive the entry
        await self._wait_for_writes(key)
        try:
            await self._persistent.delete(key)
        except Exception:
            logger.warning("Persistent cache delete failed for %s", key, exc_info=True)

    async def _wait_for_writes(self, key: str) -> None:
        pending = [t for t, k in self._pending_writes.items() if k == key]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    def _on_write_done(self, key: str, task: asyncio.Task[None]) -> None:
        self._pending_writes.pop(task, None)
        if task.cancelled():
            return
        error = task.exception()
        if error is None:
            return
        logger.warning("Persistent cache write failed for %s: %s", key, error)
        self.last_persist_error = error
        if self._on_persist_error is not None:
            self._on_persist_error(key, error)
