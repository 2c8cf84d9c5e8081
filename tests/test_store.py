"""Tests for the two-tier TTL store."""

import asyncio

import pytest

from fincache import AsyncMemoryAdapter, CacheSerializationError, TTLStore

from helpers import FailingAdapter, FakeClock


class TestRoundTrip:
    async def test_set_then_get(self, store: TTLStore) -> None:
        await store.set("user_profile_42", {"name": "Ann"}, 5000)
        assert await store.get("user_profile_42") == {"name": "Ann"}

    async def test_expires_after_ttl(self, store: TTLStore, clock: FakeClock) -> None:
        await store.set("user_profile_42", {"name": "Ann"}, 5000)
        clock.advance(6000)
        assert await store.get("user_profile_42") is None

    async def test_ttl_boundary_is_inclusive(
        self, store: TTLStore, clock: FakeClock
    ) -> None:
        await store.set("k", 1, 5000)
        clock.advance(5000)
        assert await store.get("k") == 1
        clock.advance(1)
        assert await store.get("k") is None

    async def test_set_overwrites(self, store: TTLStore) -> None:
        await store.set("k", "old", "1m")
        await store.set("k", "new", "1m")
        assert await store.get("k") == "new"

    async def test_entry_metadata(self, store: TTLStore, clock: FakeClock) -> None:
        await store.set("k", [1, 2], "30s")
        entry = await store.get_entry("k")
        assert entry is not None
        assert entry.key == "k"
        assert entry.timestamp == clock.now
        assert entry.ttl == 30_000

    async def test_falsy_payloads_are_hits(self, store: TTLStore) -> None:
        await store.set("empty", [], "1m")
        entry = await store.get_entry("empty")
        assert entry is not None
        assert entry.data == []

    async def test_rejects_non_json_data(self, store: TTLStore) -> None:
        with pytest.raises(CacheSerializationError):
            await store.set("k", {1, 2, 3}, "1m")
        assert await store.get("k") is None

    async def test_memory_only_store(self, clock: FakeClock) -> None:
        store = TTLStore(clock=clock)
        assert await store.set("k", "v", "1m") is None
        assert await store.get("k") == "v"


class TestPersistentLayer:
    async def test_write_through(
        self, store: TTLStore, persistent_adapter: AsyncMemoryAdapter
    ) -> None:
        task = await store.set("k", {"v": 1}, "1m")
        assert task is not None
        await task

        entry = await persistent_adapter.get("k")
        assert entry is not None
        assert entry.data == {"v": 1}

    async def test_miss_falls_back_and_promotes(
        self,
        store: TTLStore,
        async_adapter: AsyncMemoryAdapter,
    ) -> None:
        await store.set("k", "v", "1m")
        await store.flush()
        await async_adapter.clear()  # simulate a restart

        assert await store.get("k") == "v"
        assert await async_adapter.get("k") is not None

    async def test_expired_persistent_entry_is_evicted(
        self,
        store: TTLStore,
        async_adapter: AsyncMemoryAdapter,
        persistent_adapter: AsyncMemoryAdapter,
        clock: FakeClock,
    ) -> None:
        await store.set("k", "v", 1000)
        await store.flush()
        await async_adapter.clear()
        clock.advance(2000)

        assert await store.get("k") is None
        assert await persistent_adapter.get("k") is None
        assert await async_adapter.get("k") is None

    async def test_expired_memory_entry_evicts_both_layers(
        self,
        store: TTLStore,
        async_adapter: AsyncMemoryAdapter,
        persistent_adapter: AsyncMemoryAdapter,
        clock: FakeClock,
    ) -> None:
        await store.set("k", "v", 1000)
        await store.flush()
        clock.advance(2000)

        assert await store.get("k") is None
        assert await async_adapter.get("k") is None
        assert await persistent_adapter.get("k") is None

    async def test_expiry_before_write_lands_leaves_nothing_behind(
        self,
        store: TTLStore,
        persistent_adapter: AsyncMemoryAdapter,
        clock: FakeClock,
    ) -> None:
        await store.set("user_profile_42", {"name": "Ann"}, 5000)
        clock.advance(6000)

        assert await store.get("user_profile_42") is None
        await store.flush()
        assert await persistent_adapter.get("user_profile_42") is None

    async def test_slow_write_does_not_revive_expired_entry(
        self,
        store: TTLStore,
        persistent_adapter: AsyncMemoryAdapter,
        clock: FakeClock,
    ) -> None:
        original_set = persistent_adapter.set

        async def slow_set(key, entry):
            await asyncio.sleep(0.02)
            await original_set(key, entry)

        persistent_adapter.set = slow_set  # type: ignore[method-assign]

        await store.set("k", "v", 10)
        clock.advance(100)

        assert await store.get("k") is None
        await store.flush()
        assert await persistent_adapter.get("k") is None

    async def test_invalidate_removes_from_both_layers(
        self,
        store: TTLStore,
        persistent_adapter: AsyncMemoryAdapter,
    ) -> None:
        await store.set("k", "v", "1h")
        await store.invalidate("k")

        assert await store.get("k") is None
        assert await persistent_adapter.get("k") is None

    async def test_invalidate_prefix(self, store: TTLStore) -> None:
        await store.set("user:1:a", 1, "1h")
        await store.set("user:1:b", 2, "1h")
        await store.set("user:2:a", 3, "1h")

        assert await store.invalidate_prefix("user:1:") == 2
        assert await store.get("user:1:a") is None
        assert await store.get("user:2:a") == 3

    async def test_clear(
        self, store: TTLStore, persistent_adapter: AsyncMemoryAdapter
    ) -> None:
        await store.set("a", 1, "1h")
        await store.set("b", 2, "1h")
        await store.clear()

        assert await store.get("a") is None
        assert await store.get("b") is None
        assert len(persistent_adapter) == 0


class TestPersistentFailures:
    async def test_write_failure_is_reported(self, clock: FakeClock) -> None:
        failures: list[tuple[str, BaseException]] = []
        store = TTLStore(
            persistent=FailingAdapter(),
            clock=clock,
            on_persist_error=lambda key, exc: failures.append((key, exc)),
        )

        await store.set("k", "v", "1m")
        await store.flush()

        assert await store.get("k") == "v"  # memory write still landed
        assert [key for key, _ in failures] == ["k"]
        assert isinstance(store.last_persist_error, ConnectionError)
        assert store.pending_writes == 0

    async def test_read_failure_is_a_miss(self, clock: FakeClock) -> None:
        store = TTLStore(persistent=FailingAdapter(), clock=clock)
        assert await store.get("missing") is None

    async def test_delete_failures_are_swallowed(self, clock: FakeClock) -> None:
        store = TTLStore(persistent=FailingAdapter(), clock=clock)
        await store.set("k", "v", "1m")
        await store.invalidate("k")
        await store.clear()
        assert await store.get("k") is None

    async def test_pending_writes_are_tracked(
        self, store: TTLStore, persistent_adapter: AsyncMemoryAdapter
    ) -> None:
        gate = asyncio.Event()
        original_set = persistent_adapter.set

        async def slow_set(key, entry):
            await gate.wait()
            await original_set(key, entry)

        persistent_adapter.set = slow_set  # type: ignore[method-assign]

        await store.set("k", "v", "1m")
        assert store.pending_writes == 1

        gate.set()
        await store.flush()
        assert store.pending_writes == 0
        assert await persistent_adapter.get("k") is not None


class TestLifecycle:
    async def test_dispose_flushes_pending_writes(
        self, async_adapter: AsyncMemoryAdapter, persistent_adapter: AsyncMemoryAdapter
    ) -> None:
        async with TTLStore(async_adapter, persistent_adapter) as store:
            await store.set("k", "v", "1m")

        assert await persistent_adapter.get("k") is not None

    async def test_separate_stores_are_isolated(self, clock: FakeClock) -> None:
        first = TTLStore(clock=clock)
        second = TTLStore(clock=clock)
        await first.set("k", "v", "1m")
        assert await second.get("k") is None
