"""Shared pytest fixtures."""

import pytest
from helpers import FakeClock

from fincache import AsyncMemoryAdapter, TTLStore


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def async_adapter() -> AsyncMemoryAdapter:
    """Create a fresh AsyncMemoryAdapter for each test."""
    return AsyncMemoryAdapter()


@pytest.fixture
def persistent_adapter() -> AsyncMemoryAdapter:
    """Stand-in persistent layer for the two-tier store."""
    return AsyncMemoryAdapter()


@pytest.fixture
def store(
    async_adapter: AsyncMemoryAdapter,
    persistent_adapter: AsyncMemoryAdapter,
    clock: FakeClock,
) -> TTLStore:
    return TTLStore(async_adapter, persistent_adapter, clock=clock)
