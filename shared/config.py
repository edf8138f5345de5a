"""
Shared configuration management for the Crypto Dashboard API.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="DASHBOARD_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Shared key-value store
    redis_url: str = Field(default="redis://localhost:6379/0")
    redis_socket_timeout: float = Field(default=2.0)
    redis_connect_timeout: float = Field(default=2.0)

    # Upstream market data provider
    coingecko_base_url: str = Field(default="https://api.coingecko.com/api/v3")
    coingecko_api_key: Optional[str] = Field(default=None)
    upstream_timeout_seconds: float = Field(default=10.0)
    upstream_max_attempts: int = Field(default=3)

    # Rate limiting
    rate_limit_window_ms: int = Field(default=60_000)
    rate_limit_standard_max: int = Field(default=30)
    rate_limit_restricted_max: int = Field(default=10)
    rate_limit_relaxed_max: int = Field(default=60)
    rate_limit_coin_detail_max: int = Field(default=20)

    # Cache durations (seconds)
    cache_ttl_short: int = Field(default=60)
    cache_ttl_medium: int = Field(default=300)
    cache_ttl_long: int = Field(default=1800)
    cache_ttl_very_long: int = Field(default=3600 * 6)


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)
