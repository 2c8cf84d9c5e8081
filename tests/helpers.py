"""Test doubles shared across test modules."""

import base64
import json

from fincache import AsyncMemoryAdapter, CacheEntry


class FakeClock:
    """Millisecond clock advanced by hand."""

    def __init__(self, start: int = 1_700_000_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class FailingAdapter(AsyncMemoryAdapter):
    """Persistent layer whose every operation blows up."""

    def __init__(self, error: Exception | None = None) -> None:
        super().__init__()
        self.error = error or ConnectionError("storage offline")

    async def get(self, key: str) -> CacheEntry[object] | None:
        raise self.error

    async def set(self, key: str, entry: CacheEntry[object]) -> None:
        raise self.error

    async def delete(self, key: str) -> None:
        raise self.error

    async def delete_prefix(self, prefix: str) -> int:
        raise self.error

    async def clear(self) -> None:
        raise self.error


def make_jwt(exp_seconds: int | float | None) -> str:
    """Unsigned JWT carrying only an ``exp`` claim."""
    claims = {} if exp_seconds is None else {"exp": exp_seconds}
    header = base64.urlsafe_b64encode(b'{"alg":"none"}').rstrip(b"=").decode()
    payload = base64.urlsafe_b64encode(json.dumps(claims).encode()).rstrip(b"=").decode()
    return f"{header}.{payload}.sig"


class StubTokens:
    """Token provider with scripted pre-flight and refresh outcomes."""

    def __init__(
        self,
        token: str | None = "access-1",
        refreshed: str | None = "access-2",
        *,
        preflight_error: BaseException | None = None,
        refresh_error: BaseException | None = None,
    ) -> None:
        self.token = token
        self.refreshed = refreshed
        self.preflight_error = preflight_error
        self.refresh_error = refresh_error
        self.refresh_calls = 0

    async def get_valid_access_token(self) -> str | None:
        if self.preflight_error is not None:
            raise self.preflight_error
        return self.token

    async def refresh_token_if_needed(self) -> str | None:
        self.refresh_calls += 1
        if self.refresh_error is not None:
            raise self.refresh_error
        return self.refreshed
