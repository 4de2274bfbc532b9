"""Application configuration using Pydantic Settings.

Configuration is environment-aware:
- APP_ENV determines which .env file to load
- Supports: development, testing, staging, production
- Each environment has its own .env.{environment} file
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Determine which environment to load (default: development)
APP_ENV = os.getenv("APP_ENV", "development")

# Project root (so .env resolution doesn't depend on current working directory)
PROJECT_ROOT = Path(__file__).resolve().parents[2]

# Map environments to their respective .env files (relative to PROJECT_ROOT)
ENV_FILE_MAP = {
    "development": ".env.development",
    "testing": ".env.testing",
    "staging": ".env.staging",
    "production": ".env.production",
}

# Select the .env file for the current environment
_env_filename = ENV_FILE_MAP.get(APP_ENV, ".env.development")
_env_path = PROJECT_ROOT / _env_filename

# Only load from file if it exists (production might inject via env vars only)
_env_file = str(_env_path) if _env_path.is_file() else None


# Load .env file early to populate os.environ before creating nested settings
# This is necessary because Pydantic nested BaseSettings don't inherit env_file
if _env_file:
    from dotenv import load_dotenv
    load_dotenv(_env_file, override=True)


class ApiSettings(BaseSettings):
    """Downstream API addresses and auth endpoint paths.

    The trusted (server) context prefers ``API_BASE_URL``; the delegated
    (browser-facing) context falls back to ``API_PUBLIC_BASE_URL``. Having
    neither is a startup-time configuration error raised by the client factory.
    """

    base_url: str | None = Field(
        None,
        description="Downstream API base URL used from trusted server context",
    )
    public_base_url: str | None = Field(
        None,
        description="Public API base URL used when the server-only value is absent",
    )
    signin_path: str = Field(
        "/api/v1/auth/signin",
        description="Downstream sign-in endpoint",
    )
    refresh_token_path: str = Field(
        "/api/v1/auth/refresh-token",
        description="Downstream endpoint exchanging a refresh token for new tokens",
    )
    bff_refresh_path: str = Field(
        "/api/auth/refresh",
        description="Local refresh endpoint called by delegated clients",
    )
    bff_proxy_path: str = Field(
        "/api/proxy",
        description="Local proxy endpoint delegated clients route requests through",
    )

    model_config = SettingsConfigDict(
        env_prefix="API_",
        case_sensitive=False,
    )


class HttpSettings(BaseSettings):
    """Outbound HTTP transport configuration (httpx)."""

    connect_timeout: float = Field(5.0, description="Connection timeout in seconds")
    read_timeout: float = Field(30.0, description="Read timeout in seconds")
    write_timeout: float = Field(30.0, description="Write timeout in seconds")
    pool_timeout: float = Field(5.0, description="Connection pool acquisition timeout")
    proxy_timeout: float = Field(
        30.0,
        description="Total timeout applied by the proxy route when forwarding",
    )
    max_connections: int = Field(100, ge=1)
    max_keepalive_connections: int = Field(20, ge=0)

    model_config = SettingsConfigDict(
        env_prefix="HTTP_",
        case_sensitive=False,
    )


class RedisSettings(BaseSettings):
    """Shared key-value store configuration."""

    backend: str = Field(
        "redis",
        description="Store backend: 'redis' for shared state, 'memory' for single-process use",
    )
    url: str | None = Field(
        None,
        description="Redis connection URL (required when backend is 'redis')",
    )

    model_config = SettingsConfigDict(
        env_prefix="REDIS_",
        case_sensitive=False,
    )


class RateLimitSettings(BaseSettings):
    """Sign-in rate limiting policy."""

    max_attempts: int = Field(
        5,
        description="Failed attempts allowed per window before blocking",
        ge=1,
    )
    window_seconds: int = Field(
        15 * 60,
        description="Attempt window length in seconds",
        ge=1,
    )
    block_seconds: int = Field(
        30 * 60,
        description="Block duration in seconds once the maximum is reached",
        ge=1,
    )
    namespace: str = Field(
        "signin",
        description="Prefix of client identities (identity is '<namespace>:<ip>')",
    )

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        case_sensitive=False,
    )


class CookieSettings(BaseSettings):
    """Authentication cookie names and attributes."""

    access_token_name: str = Field("auth_access_token")
    refresh_token_name: str = Field("auth_refresh_token")
    user_name: str = Field("auth_user")
    max_age_seconds: int = Field(
        7 * 24 * 60 * 60,
        description="Cookie lifetime; JWT expiry is enforced downstream",
        ge=1,
    )
    secure: bool = Field(
        False,
        description="Send cookies over HTTPS only (enable in production)",
    )

    model_config = SettingsConfigDict(
        env_prefix="AUTH_COOKIE_",
        case_sensitive=False,
    )


class LogSettings(BaseSettings):
    """Logging configuration."""

    level: str = Field("INFO", description="Root log level")
    format: str = Field("json", description="'json' or 'plain'")
    output: str = Field("stdout", description="'stdout' or 'file'")
    file_path: str | None = Field(None, description="Log file path when output is 'file'")
    max_bytes: int = Field(10_485_760, description="Rotate file after this size (0 disables)")
    backup_count: int = Field(5, description="Rotated files to keep")
    request_id_header: str = Field("X-Request-ID", description="Correlation header name")

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        case_sensitive=False,
    )


class Settings(BaseSettings):
    """Main application settings container.

    Automatically loads from the appropriate .env.{APP_ENV} file.
    Raises validation errors on startup if settings are malformed.

    Environments:
    - development: Local development (dev-only endpoints enabled)
    - testing: Automated tests (uses .env.testing)
    - staging: Pre-production (uses .env.staging)
    - production: Production deployment (uses .env.production)
    """

    app_env: str = APP_ENV
    api: ApiSettings = Field(default_factory=ApiSettings)
    http: HttpSettings = Field(default_factory=HttpSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    cookies: CookieSettings = Field(default_factory=CookieSettings)
    log: LogSettings = Field(default_factory=LogSettings)

    model_config = SettingsConfigDict(
        case_sensitive=False,
    )

    @property
    def is_development(self) -> bool:
        return self.app_env == "development"


# Global settings instance - composed from domain-specific settings
# Nested settings are created via default_factory so env loading works.
settings = Settings()
