"""Configuration for fincache.

Every setting can be overridden with a ``FINCACHE_`` environment variable
or a ``.env`` file.
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from fincache.duration import parse_duration

# Endpoints that must never log the user out: auth flows and bank-linking
# callbacks that can legitimately fail while a session is half set up.
DEFAULT_EXEMPT_PATHS: tuple[str, ...] = (
    "/nordigen/callback",
    "/banking/callback",
    "/auth/login",
    "/auth/register",
    "/auth/refresh",
    "/auth/confirm-signup",
    "/auth/resend-verification",
    "/auth/forgot-password",
    "/auth/confirm-forgot-password",
)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="FINCACHE_", env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    # Backend
    api_base_url: str = "http://localhost:8000/api"
    request_timeout: float = Field(default=30.0, gt=0)
    refresh_path: str = "/auth/refresh"
    logout_exempt_paths: list[str] = Field(default_factory=lambda: list(DEFAULT_EXEMPT_PATHS))

    # Cache
    cache_prefix: str = "fincache"
    default_ttl: str = "5m"
    redis_url: str | None = None  # Persistent layer; memory only when unset
    memory_max_items: int | None = Field(default=None, gt=0)

    # Token refresh
    token_refresh_window: str = "5m"
    refresh_max_attempts: int = Field(default=5, ge=1)
    refresh_attempt_window: str = "1m"
    refresh_retry_attempts: int = Field(default=3, ge=1)

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    @field_validator("default_ttl", "token_refresh_window", "refresh_attempt_window")
    @classmethod
    def _validate_duration(cls, v: str) -> str:
        parse_duration(v)
        return v

    @property
    def refresh_url(self) -> str:
        return self.api_base_url.rstrip("/") + "/" + self.refresh_path.lstrip("/")


@lru_cache
def get_settings() -> Settings:
    return Settings()
