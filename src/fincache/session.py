"""Session state: stored tokens and the logged-in flag."""

from __future__ import annotations

import json
from typing import Any, Protocol, runtime_checkable

from fincache.types import AuthTokens


@runtime_checkable
class SessionStore(Protocol):
    """Where the current session's tokens and login state live."""

    async def load_tokens(self) -> AuthTokens | None: ...

    async def save_tokens(self, tokens: AuthTokens) -> None: ...

    async def clear_tokens(self) -> None: ...

    async def is_logged_out(self) -> bool:
        """True only when the session was explicitly logged out."""
        ...

    async def mark_logged_in(self) -> None: ...

    async def mark_logged_out(self) -> None:
        """Clear tokens and flag the session as logged out."""
        ...


def _tokens_to_json(tokens: AuthTokens) -> str:
    return json.dumps(
        {
            "accessToken": tokens.access_token,
            "refreshToken": tokens.refresh_token,
            "idToken": tokens.id_token,
            "tokenExpiresAt": tokens.expires_at,
        }
    )


def _tokens_from_json(data: bytes | str) -> AuthTokens | None:
    if isinstance(data, bytes):
        data = data.decode("utf-8")
    obj = json.loads(data)
    if not obj.get("accessToken") or not obj.get("refreshToken"):
        return None
    return AuthTokens(
        access_token=obj["accessToken"],
        refresh_token=obj["refreshToken"],
        id_token=obj.get("idToken"),
        expires_at=obj.get("tokenExpiresAt"),
    )


class MemorySessionStore:
    """Process-local session state."""

    def __init__(self, tokens: AuthTokens | None = None) -> None:
        self._tokens = tokens
        self._logged_in: bool | None = True if tokens is not None else None

    async def load_tokens(self) -> AuthTokens | None:
        return self._tokens

    async def save_tokens(self, tokens: AuthTokens) -> None:
        self._tokens = tokens

    async def clear_tokens(self) -> None:
        self._tokens = None

    async def is_logged_out(self) -> bool:
        return self._logged_in is False

    async def mark_logged_in(self) -> None:
        self._logged_in = True

    async def mark_logged_out(self) -> None:
        self._tokens = None
        self._logged_in = False


class RedisSessionStore:
    """Session state persisted in Redis so it survives restarts."""

    def __init__(
        self,
        client: Any,  # redis.asyncio.Redis
        *,
        prefix: str = "fincache",
    ) -> None:
        self._client = client
        self._tokens_key = f"{prefix}:session:tokens"
        self._logged_in_key = f"{prefix}:session:logged_in"

    async def load_tokens(self) -> AuthTokens | None:
        data = await self._client.get(self._tokens_key)
        if data is None:
            return None
        return _tokens_from_json(data)

    async def save_tokens(self, tokens: AuthTokens) -> None:
        await self._client.set(self._tokens_key, _tokens_to_json(tokens))

    async def clear_tokens(self) -> None:
        await self._client.delete(self._tokens_key)

    async def is_logged_out(self) -> bool:
        flag = await self._client.get(self._logged_in_key)
        if isinstance(flag, bytes):
            flag = flag.decode("utf-8")
        return flag == "false"

    async def mark_logged_in(self) -> None:
        await self._client.set(self._logged_in_key, "true")

    async def mark_logged_out(self) -> None:
        await self._client.delete(self._tokens_key)
        await self._client.set(self._logged_in_key, "false")
