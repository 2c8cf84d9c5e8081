"""fincache - Response cache and auth-aware HTTP client for finance backends."""

import logging
from contextlib import suppress

# Adapters (async only)
from fincache.adapters import (
    AsyncMemoryAdapter,
    AsyncStorageAdapter,
)

# Cached-call API
from fincache.cache import ResponseCache, create_cache
from fincache.config import DEFAULT_EXEMPT_PATHS, Settings, get_settings
from fincache.dedup import RequestDeduplicator

# Duration parsing
from fincache.duration import parse_duration
from fincache.errors import (
    AuthError,
    CacheError,
    CacheSerializationError,
    FincacheError,
    LoggedOutError,
    PreflightError,
    RetryStateError,
    SessionExpiredError,
    TokenRefreshError,
)

# HTTP
from fincache.http_client import ATTEMPT_EXTENSION, AuthClient, create_auth_client
from fincache.keys import GLOBAL_SCOPE, scope_prefix, scoped_key, split_key, user_scope
from fincache.logging_config import setup_logging
from fincache.session import MemorySessionStore, RedisSessionStore, SessionStore
from fincache.store import TTLStore
from fincache.tokens import TokenManager, TokenProvider, parse_jwt_expiry

# Core types
from fincache.types import (
    AuthTokens,
    CacheEntry,
    Duration,
    RequestAttempt,
    RetryState,
    Scope,
)

# Optional adapter imports - only available when dependencies are installed
with suppress(ImportError):
    from fincache.adapters import AsyncRedisAdapter

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "0.1.0"

__all__ = [
    "ATTEMPT_EXTENSION",
    "DEFAULT_EXEMPT_PATHS",
    "GLOBAL_SCOPE",
    "AsyncMemoryAdapter",
    "AsyncRedisAdapter",
    "AsyncStorageAdapter",
    "AuthClient",
    "AuthError",
    "AuthTokens",
    "CacheEntry",
    "CacheError",
    "CacheSerializationError",
    "Duration",
    "FincacheError",
    "LoggedOutError",
    "MemorySessionStore",
    "PreflightError",
    "RedisSessionStore",
    "RequestAttempt",
    "RequestDeduplicator",
    "ResponseCache",
    "RetryState",
    "RetryStateError",
    "Scope",
    "SessionExpiredError",
    "SessionStore",
    "Settings",
    "TTLStore",
    "TokenManager",
    "TokenProvider",
    "TokenRefreshError",
    "create_auth_client",
    "create_cache",
    "get_settings",
    "parse_duration",
    "parse_jwt_expiry",
    "scope_prefix",
    "scoped_key",
    "setup_logging",
    "split_key",
    "user_scope",
]
