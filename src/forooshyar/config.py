from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="FOROOSHYAR_",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    app_name: str = "forooshyar-cache"
    env: str = "dev"

    # Cache
    cache_enabled: bool = Field(default=True, validation_alias="CACHE_ENABLED")
    cache_ttl: int = Field(default=3600, gt=0, validation_alias="CACHE_TTL")
    cache_prefix: str = Field(default="forooshyar_", validation_alias="CACHE_PREFIX")
    cache_backend: Literal["memory", "redis"] = Field(
        default="memory", validation_alias="CACHE_BACKEND"
    )
    # Glob patterns (relative to cache_prefix) covering every list/query response
    cache_list_patterns: list[str] = Field(
        default_factory=lambda: ["products_*"], validation_alias="CACHE_LIST_PATTERNS"
    )
    cache_fallback_ttl: int = Field(default=86400, gt=0, validation_alias="CACHE_FALLBACK_TTL")

    # Redis
    redis_url: str = Field(default="redis://localhost:6379/0", validation_alias="REDIS_URL")

    # Invalidation bookkeeping
    invalidation_log_size: int = Field(default=1000, gt=0, validation_alias="INVALIDATION_LOG_SIZE")
    failed_invalidation_limit: int = Field(
        default=500, gt=0, validation_alias="FAILED_INVALIDATION_LIMIT"
    )

    # WooCommerce REST API (relationship lookups)
    wc_url: str | None = Field(default=None, validation_alias="WC_URL")
    wc_consumer_key: str | None = Field(default=None, validation_alias="WC_CONSUMER_KEY")
    wc_consumer_secret: str | None = Field(default=None, validation_alias="WC_CONSUMER_SECRET")
    wc_timeout: float = Field(default=10.0, gt=0, validation_alias="WC_TIMEOUT")

    # Logging
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_json: bool = Field(default=True, validation_alias="LOG_JSON")


settings = Settings()
