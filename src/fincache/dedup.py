"""In-flight request deduplication."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar, cast

T = TypeVar("T")


class RequestDeduplicator:
    """Collapse concurrent calls for the same key into one underlying call.

    The first caller for a key starts ``producer()`` as a task; later
    callers await that same task until it settles. The registration is
    dropped by a done-callback on both success and failure, so a failed
    call never blocks a retry under the same key.
    """

    def __init__(self) -> None:
        self._in_flight: dict[str, asyncio.Task[Any]] = {}

    def __len__(self) -> int:
        return len(self._in_flight)

    def is_pending(self, key: str) -> bool:
        return key in self._in_flight

    async def run(self, key: str, producer: Callable[[], Awaitable[T]]) -> T:
        """Run ``producer`` unless a call for ``key`` is already in flight."""
        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.ensure_future(producer())
            self._in_flight[key] = task
            task.add_done_callback(lambda t: self._release(key, t))
        # Shielded so one waiter's cancellation leaves the shared call running
        return cast(T, await asyncio.shield(task))

    def _release(self, key: str, task: asyncio.Task[Any]) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]
        if not task.cancelled():
            # Retrieved here so a failure nobody awaited is not reported as lost
            task.exception()
