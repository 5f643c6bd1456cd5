"""
Storage backend selection from configuration.
"""

from shared.config import OfflineCacheConfig
from .base import StorageBackend
from .memory import MemoryStorageBackend


def create_storage_backend(config: OfflineCacheConfig) -> StorageBackend:
    """Build the backend named by ``config.storage_backend``."""
    if config.storage_backend == "postgres":
        from .postgres import PostgresStorageBackend

        return PostgresStorageBackend(
            config.postgres_dsn,
            min_size=config.postgres_min_pool_size,
            max_size=config.postgres_max_pool_size
        )

    if config.storage_backend == "redis":
        from .redis_store import RedisStorageBackend

        return RedisStorageBackend(config.redis_url, key_prefix=config.redis_key_prefix)

    return MemoryStorageBackend()
