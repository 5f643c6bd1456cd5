"""
Shared configuration management for the offline cache layer.
"""

from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


STORAGE_BACKENDS = ("memory", "postgres", "redis")


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="OFFLINE_",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Storage
    storage_backend: str = Field(default="memory")
    postgres_dsn: str = Field(default="postgres://localhost:5432/offline")
    postgres_min_pool_size: int = Field(default=1)
    postgres_max_pool_size: int = Field(default=10)
    redis_url: str = Field(default="redis://localhost:6379/0")
    redis_key_prefix: str = Field(default="offline")

    @field_validator("storage_backend")
    @classmethod
    def _check_backend(cls, value: str) -> str:
        value = value.lower()
        if value not in STORAGE_BACKENDS:
            raise ValueError(f"storage_backend must be one of {', '.join(STORAGE_BACKENDS)}")
        return value


class OfflineCacheConfig(BaseConfig):
    """Offline cache configuration."""

    service_name: str = Field(default="offline")

    # Expiration sweeps are suppressed to one every x milliseconds
    invalidation_interval_ms: int = Field(default=5000, ge=0)

    # Connectivity
    connectivity_probe_url: Optional[str] = Field(default=None)
    connectivity_probe_interval_seconds: float = Field(default=30.0, gt=0)
    connectivity_probe_timeout_seconds: float = Field(default=5.0, gt=0)

    # Remote source
    remote_base_url: str = Field(default="http://localhost:8000")
    remote_timeout_seconds: float = Field(default=10.0, gt=0)

    # Metrics
    metrics_port: Optional[int] = Field(default=None)

    # Entity kinds
    listing_ttl_ms: int = Field(default=180, ge=-1)


def get_config(**overrides) -> OfflineCacheConfig:
    """Get configuration for the offline cache service."""
    return OfflineCacheConfig(**overrides)
