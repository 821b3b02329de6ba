"""Application settings and configuration.

This module defines all configuration options for the Cipher Relay service.
Settings are loaded from environment variables with sensible defaults.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="Cipher Relay", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")

    # Security and authentication
    secret_key: str = Field(alias="SECRET_KEY")
    debug: bool = Field(default=False, alias="DEBUG")

    # Database configuration
    database_url: str = Field(default="sqlite:///./cipher_relay.db", alias="DATABASE_URL")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")
    persistence_timeout_seconds: float = Field(
        default=5.0,
        alias="PERSISTENCE_TIMEOUT_SECONDS",
    )

    # Redis configuration for the viewer history cache
    redis_url: str = Field(default="redis://localhost:6379", alias="REDIS_URL")
    cache_timeout_seconds: float = Field(default=2.0, alias="CACHE_TIMEOUT_SECONDS")
    history_cache_limit: int = Field(default=100, alias="HISTORY_CACHE_LIMIT")
    history_cache_ttl_seconds: int = Field(default=3600, alias="HISTORY_CACHE_TTL_SECONDS")
    chat_list_cache_ttl_seconds: int = Field(default=60, alias="CHAT_LIST_CACHE_TTL_SECONDS")
    keepalive_ttl_seconds: int = Field(default=3600, alias="KEEPALIVE_TTL_SECONDS")
    keepalive_token: str | None = Field(default=None, alias="KEEPALIVE_TOKEN")

    # JWT authentication settings
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(
        default=60 * 24 * 30,
        alias="ACCESS_TOKEN_EXPIRE_MINUTES",
    )

    # Real-time delivery
    echo_to_sender: bool = Field(default=True, alias="ECHO_TO_SENDER")

    # CORS configuration for web frontend access
    cors_origins: list[str] = Field(
        default=["*"],
        alias="CORS_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "OPTIONS"],
        alias="CORS_ALLOW_METHODS",
    )
    cors_allow_headers: list[str] = Field(
        default=["*"],
        alias="CORS_ALLOW_HEADERS",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )


settings = Settings()  # type: ignore[call-arg]
