"""Core types for the fincache library."""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Generic, TypeVar

from fincache.errors import RetryStateError

T = TypeVar("T")

# Namespace for cache keys, e.g. ("user", "42")
Scope = tuple[str, ...]

# Duration type alias
Duration = str | int | timedelta  # "30s", "5m", "2h", "1d", milliseconds or timedelta


def now_ms() -> int:
    """Current Unix time in milliseconds."""
    return int(time.time() * 1000)


@dataclass(frozen=True, slots=True)
class CacheEntry(Generic[T]):
    """A cached payload with its write time and time-to-live."""

    key: str
    data: T
    timestamp: int  # Unix timestamp ms
    ttl: int  # ms

    def is_fresh(self, now: int) -> bool:
        """Check whether the entry is still within its TTL at ``now``."""
        return now - self.timestamp <= self.ttl

    def to_payload(self) -> dict[str, object]:
        """Persisted representation (the key lives in the storage key)."""
        return {"data": self.data, "timestamp": self.timestamp, "ttl": self.ttl}


@dataclass(frozen=True, slots=True)
class AuthTokens:
    """Credentials for the current session."""

    access_token: str
    refresh_token: str
    id_token: str | None = None
    expires_at: int | None = None  # Unix timestamp ms


class RetryState(Enum):
    """Lifecycle of a single outbound request."""

    SENT = "sent"
    RETRYING = "retrying"
    DONE = "done"


@dataclass(frozen=True, slots=True)
class RequestAttempt:
    """Immutable retry state for one outbound call.

    A request may be retried at most once: ``retry()`` is only legal from
    ``SENT``, and every other transition ends in ``DONE``.
    """

    state: RetryState = RetryState.SENT
    retries: int = 0

    @property
    def can_retry(self) -> bool:
        return self.state is RetryState.SENT

    def retry(self) -> RequestAttempt:
        if not self.can_retry:
            raise RetryStateError(f"Cannot retry a request in state {self.state.value}")
        return RequestAttempt(RetryState.RETRYING, self.retries + 1)

    def finish(self) -> RequestAttempt:
        return RequestAttempt(RetryState.DONE, self.retries)
