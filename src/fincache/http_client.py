"""Auth-aware async HTTP client.

Each request obtains a bearer token before dispatch and, on a 401,
refreshes the token and retries exactly once. A request's retry state is
an explicit ``RequestAttempt`` value rather than a flag on the request.

An optional ``ResponseCache`` is injected for cached JSON reads, and the
signed-in user's cache scope is dropped when the session is logged out.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from types import TracebackType
from typing import TYPE_CHECKING, Any

import httpx

from fincache.config import DEFAULT_EXEMPT_PATHS
from fincache.errors import LoggedOutError, PreflightError, SessionExpiredError
from fincache.session import MemorySessionStore, SessionStore
from fincache.tokens import TokenManager, TokenProvider
from fincache.types import Duration, RequestAttempt, Scope

if TYPE_CHECKING:
    from fincache.cache import ResponseCache
    from fincache.config import Settings

logger = logging.getLogger(__name__)

# Key under which the final RequestAttempt is stored in response.extensions
ATTEMPT_EXTENSION = "fincache.attempt"


class AuthClient:
    """HTTP client that attaches bearer tokens and recovers from one 401."""

    def __init__(
        self,
        tokens: TokenProvider,
        session: SessionStore,
        *,
        base_url: str,
        timeout: float = 30.0,
        exempt_paths: Iterable[str] = DEFAULT_EXEMPT_PATHS,
        strict_preflight: bool = False,
        cache: ResponseCache | None = None,
        cache_scope: Scope | None = None,
        owned_token_manager: TokenManager | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._tokens = tokens
        self._session = session
        self._exempt_paths = tuple(exempt_paths)
        self._strict_preflight = strict_preflight
        self._cache = cache
        # Scope of the signed-in user; dropped from the cache on logout
        self.cache_scope = cache_scope
        self._owned_token_manager = owned_token_manager
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers={"Content-Type": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    def is_exempt(self, url: str) -> bool:
        """Auth and bank-callback endpoints never trigger a logout."""
        return any(path in url for path in self._exempt_paths)

    async def request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send a request with bearer auth and a single retry after refresh.

        Non-401 responses are returned unchanged, whatever their status.

        Raises:
            LoggedOutError: The session is logged out and ``url`` is not exempt
            SessionExpiredError: The 401 could not be recovered from
            httpx.HTTPStatusError: The refresh endpoint was unreachable; carries
                the original 401 and leaves the session intact
        """
        if await self._session.is_logged_out() and not self.is_exempt(url):
            logger.info("User logged out, refusing request to %s", url)
            raise LoggedOutError(url)

        attempt = RequestAttempt()
        token = await self._preflight_token(url)
        while True:
            response = await self._send(method, url, token, kwargs)
            if response.status_code != 401:
                break
            if not attempt.can_retry:
                # Second 401 with a freshly refreshed token
                await self._expire_session(url)
                raise SessionExpiredError()

            logger.info("401 Unauthorized: %s - attempting token refresh", url)
            attempt = attempt.retry()
            token = await self._refreshed_token(url, response)

        response.extensions[ATTEMPT_EXTENSION] = attempt.finish()
        await self._log_response(method, url, response)
        return response

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("POST", url, **kwargs)

    async def put(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("PUT", url, **kwargs)

    async def patch(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("PATCH", url, **kwargs)

    async def delete(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("DELETE", url, **kwargs)

    @property
    def cache(self) -> ResponseCache | None:
        return self._cache

    async def get_json(
        self,
        url: str,
        *,
        cache_key: str | None = None,
        ttl: Duration | None = None,
        scope: Scope | None = None,
        force_refresh: bool = False,
        **kwargs: Any,
    ) -> Any:
        """GET and decode JSON, raising for any non-success status.

        With a ``cache_key`` and a configured cache the call goes through
        ``ResponseCache.cached_call``: a fresh cached payload skips the
        request and concurrent callers share one request. ``scope``
        defaults to ``cache_scope``.
        """

        async def fetch() -> Any:
            response = await self.get(url, **kwargs)
            response.raise_for_status()
            return response.json()

        if cache_key is None or self._cache is None:
            return await fetch()
        return await self._cache.cached_call(
            cache_key,
            fetch,
            ttl,
            force_refresh=force_refresh,
            scope=scope if scope is not None else self.cache_scope,
        )

    async def aclose(self) -> None:
        await self._client.aclose()
        if self._owned_token_manager is not None:
            await self._owned_token_manager.aclose()

    async def __aenter__(self) -> AuthClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    # -------------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------------

    async def _preflight_token(self, url: str) -> str | None:
        try:
            token = await self._tokens.get_valid_access_token()
        except httpx.TransportError as e:
            if self._strict_preflight:
                raise PreflightError(
                    f"Network error prevented token refresh for {url}"
                ) from e
            logger.info("Network error getting token for %s - continuing without", url)
            return None
        if token is None:
            logger.info("No token available for %s", url)
        return token

    async def _refreshed_token(self, url: str, response: httpx.Response) -> str:
        """Refresh after a 401, translating failures for the caller."""
        try:
            new_token = await self._tokens.refresh_token_if_needed()
        except httpx.TransportError as e:
            # Refresh endpoint unreachable: surface the 401, keep the session
            logger.info("Token refresh unreachable for %s - keeping session", url)
            raise httpx.HTTPStatusError(
                f"Client error '401 Unauthorized' for url '{response.url}'",
                request=response.request,
                response=response,
            ) from e
        except Exception as e:
            await self._expire_session(url)
            raise SessionExpiredError() from e

        if not new_token:
            await self._expire_session(url)
            raise SessionExpiredError()
        return new_token

    async def _send(
        self, method: str, url: str, token: str | None, kwargs: dict[str, Any]
    ) -> httpx.Response:
        request = self._client.build_request(method, url, **kwargs)
        if token:
            request.headers["Authorization"] = f"Bearer {token}"
        return await self._client.send(request)

    async def _expire_session(self, url: str) -> None:
        if self.is_exempt(url):
            logger.info("Refresh failed on exempt endpoint %s - keeping session", url)
            return
        logger.warning("Token refresh failed for %s - logging out", url)
        await self._session.mark_logged_out()
        if self._cache is not None and self.cache_scope is not None:
            removed = await self._cache.invalidate_scope(self.cache_scope)
            logger.info("Dropped %d cached entries for the logged-out user", removed)

    async def _log_response(self, method: str, url: str, response: httpx.Response) -> None:
        if response.is_success:
            logger.debug("%s %s - %d", method, url, response.status_code)
        elif not await self._session.is_logged_out():
            logger.warning("%s %s failed - %d", method, url, response.status_code)


def create_auth_client(
    settings: Settings | None = None,
    *,
    session: SessionStore | None = None,
    tokens: TokenProvider | None = None,
    cache: ResponseCache | None = None,
    cache_scope: Scope | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> AuthClient:
    """Create an auth client wired to a token manager from settings.

    A token manager built here is closed together with the client.
    """
    if settings is None:
        from fincache.config import get_settings

        settings = get_settings()

    session = session if session is not None else MemorySessionStore()
    manager: TokenManager | None = None
    if tokens is None:
        tokens = manager = TokenManager(
            session,
            refresh_url=settings.refresh_url,
            timeout=settings.request_timeout,
            refresh_window=settings.token_refresh_window,
            max_refresh_attempts=settings.refresh_max_attempts,
            attempt_window=settings.refresh_attempt_window,
            retry_attempts=settings.refresh_retry_attempts,
        )
    return AuthClient(
        tokens,
        session,
        base_url=settings.api_base_url,
        timeout=settings.request_timeout,
        exempt_paths=settings.logout_exempt_paths,
        cache=cache,
        cache_scope=cache_scope,
        owned_token_manager=manager,
        transport=transport,
    )


__all__ = ["AuthClient", "create_auth_client"]
