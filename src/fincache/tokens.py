"""Access-token management: expiry checks and deduplicated refresh."""

from __future__ import annotations

import base64
import json
import logging
from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from fincache.dedup import RequestDeduplicator
from fincache.duration import parse_duration
from fincache.errors import TokenRefreshError
from fincache.session import SessionStore
from fincache.types import AuthTokens, Duration, now_ms

logger = logging.getLogger(__name__)

_REFRESH_KEY = "token-refresh"


@runtime_checkable
class TokenProvider(Protocol):
    """What the HTTP client needs from a token manager."""

    async def get_valid_access_token(self) -> str | None:
        """Return a usable access token, refreshing first if needed."""
        ...

    async def refresh_token_if_needed(self) -> str | None:
        """Force a refresh. Raises on hard failure."""
        ...


def parse_jwt_expiry(token: str) -> int | None:
    """Read the ``exp`` claim of a JWT, in milliseconds."""
    try:
        payload = token.split(".")[1]
        padded = payload + "=" * (-len(payload) % 4)
        claims = json.loads(base64.urlsafe_b64decode(padded))
    except (IndexError, ValueError):
        return None
    exp = claims.get("exp") if isinstance(claims, dict) else None
    if isinstance(exp, bool) or not isinstance(exp, (int, float)):
        return None
    return int(exp * 1000)


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    return isinstance(exc, httpx.HTTPStatusError) and exc.response.status_code >= 500


class TokenManager:
    """Keeps the session's access token fresh."""

    def __init__(
        self,
        session: SessionStore,
        *,
        refresh_url: str,
        http: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
        refresh_window: Duration = "5m",
        max_refresh_attempts: int = 5,
        attempt_window: Duration = "1m",
        retry_attempts: int = 3,
        retry_wait: wait_base | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._session = session
        self._refresh_url = refresh_url
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(
            timeout=timeout, headers={"Content-Type": "application/json"}
        )
        self._refresh_window = parse_duration(refresh_window)
        self._max_refresh_attempts = max_refresh_attempts
        self._attempt_window = parse_duration(attempt_window)
        self._retry_attempts = retry_attempts
        self._retry_wait = retry_wait if retry_wait is not None else wait_exponential(
            multiplier=1, max=5
        )
        self._clock = clock
        self._dedup = RequestDeduplicator()
        self._refresh_attempts = 0
        self._last_refresh_attempt: int | None = None

    async def get_valid_access_token(self) -> str | None:
        tokens = await self._session.load_tokens()
        if tokens is None:
            return None

        expires_at = tokens.expires_at or parse_jwt_expiry(tokens.access_token)
        # Opaque tokens carry no expiry; let the backend reject them
        if expires_at is None or expires_at - self._clock() > self._refresh_window:
            return tokens.access_token

        try:
            return await self.refresh_token_if_needed()
        except TokenRefreshError as e:
            logger.info("Token refresh rejected during pre-flight: %s", e)
            return None

    async def refresh_token_if_needed(self) -> str | None:
        # Join a refresh that is already running instead of starting another
        if self._dedup.is_pending(_REFRESH_KEY):
            return await self._dedup.run(_REFRESH_KEY, self._perform_refresh)

        now = self._clock()
        if (
            self._last_refresh_attempt is not None
            and now - self._last_refresh_attempt < self._attempt_window
        ):
            if self._refresh_attempts >= self._max_refresh_attempts:
                logger.warning(
                    "Skipping token refresh: %d attempts in the last %dms",
                    self._refresh_attempts,
                    self._attempt_window,
                )
                return None
        else:
            self._refresh_attempts = 0

        self._refresh_attempts += 1
        self._last_refresh_attempt = now
        token = await self._dedup.run(_REFRESH_KEY, self._perform_refresh)
        if token:
            self._refresh_attempts = 0
        return token

    async def aclose(self) -> None:
        """Close the HTTP client if this manager created it."""
        if self._owns_http:
            await self._http.aclose()

    # -------------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------------

    async def _perform_refresh(self) -> str | None:
        tokens = await self._session.load_tokens()
        if tokens is None:
            return None

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._retry_attempts),
                wait=self._retry_wait,
                retry=retry_if_exception(_is_retryable),
                reraise=True,
            ):
                with attempt:
                    response = await self._post_refresh(tokens.refresh_token)
        except httpx.HTTPStatusError as e:
            raise TokenRefreshError(
                f"Refresh endpoint failed with HTTP {e.response.status_code}",
                e.response.status_code,
            ) from e

        if response.status_code in (401, 403):
            await self._session.clear_tokens()
            raise TokenRefreshError("Refresh token rejected", response.status_code)
        if not response.is_success:
            raise TokenRefreshError(
                f"Refresh failed with HTTP {response.status_code}", response.status_code
            )

        body = self._body(response)
        access_token = body.get("accessToken")
        if not isinstance(access_token, str) or not access_token:
            raise TokenRefreshError("No access token in refresh response")
        new_tokens = AuthTokens(
            access_token=access_token,
            refresh_token=body.get("refreshToken") or tokens.refresh_token,
            id_token=body.get("idToken") or tokens.id_token,
            expires_at=parse_jwt_expiry(access_token),
        )
        await self._session.save_tokens(new_tokens)
        logger.info("Access token refreshed")
        return access_token

    async def _post_refresh(self, refresh_token: str) -> httpx.Response:
        response = await self._http.post(
            self._refresh_url, json={"refreshToken": refresh_token}
        )
        if response.status_code >= 500:
            response.raise_for_status()
        return response

    @staticmethod
    def _body(response: httpx.Response) -> dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}

