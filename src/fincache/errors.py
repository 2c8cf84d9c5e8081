"""Exception hierarchy for fincache."""


class FincacheError(Exception):
    """Base class for all fincache errors."""


class CacheError(FincacheError):
    """A cache layer failed. Never fails the primary request."""


class CacheSerializationError(CacheError, TypeError):
    """Cached data is not JSON-serializable."""


class AuthError(FincacheError):
    """Base class for authentication failures."""


class LoggedOutError(AuthError):
    """Request refused because the local session is logged out."""

    def __init__(self, url: str) -> None:
        super().__init__(f"User is logged out, refusing request to {url}")
        self.url = url


class SessionExpiredError(AuthError):
    """Token refresh failed; the user has to log in again."""

    def __init__(self, message: str = "Session expired - please log in again") -> None:
        super().__init__(message)


class TokenRefreshError(AuthError):
    """The refresh endpoint rejected the refresh or returned garbage."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class PreflightError(AuthError):
    """Token acquisition failed before dispatch in strict mode."""


class RetryStateError(FincacheError):
    """Illegal transition of a request's retry state."""
