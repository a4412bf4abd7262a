"""
Shared configuration management for the hotel backend services.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="HOTELS_",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Upstream hotel API
    hotel_api_url: str = Field(default="https://hotelapi.loyalty.dev")
    hotel_api_timeout: float = Field(default=10.0)
    hotel_api_failure_threshold: int = Field(default=5)
    hotel_api_recovery_timeout: float = Field(default=30.0)

    # Response cache
    cache_default_ttl: float = Field(default=600)
    cache_check_period: float = Field(default=120)
    cache_wait_timeout_ms: int = Field(default=5000)
    hotels_cache_ttl: float = Field(default=600)
    prices_cache_ttl: float = Field(default=600)

    # Frontend origins allowed by CORS outside local
    frontend_url: Optional[str] = Field(default=None)


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
