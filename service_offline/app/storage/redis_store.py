"""
Redis storage backend for the offline cache.

Each partition uses two keys:

- ``<prefix>:<type_prefix>:elements``: hash of id -> serialized element
- ``<prefix>:<type_prefix>:expiry``: sorted set of id scored by ttl

Entries that never expire are kept out of the sorted set, so the sweep only
has to look at scores below ``now``.
"""

from typing import Any, Dict, List, Optional, Sequence

import redis.asyncio as redis

from shared.errors import StorageError, StorageUnavailableError
from ..models import CacheEntry, NEVER_EXPIRES
from .base import StorageBackend, StoragePartition


# Removes every id scored strictly below ARGV[1] from both keys, atomically.
DELETE_EXPIRED_SCRIPT = """
local ids = redis.call('ZRANGEBYSCORE', KEYS[2], '-inf', '(' .. ARGV[1])
for i = 1, #ids, 500 do
    local chunk = {unpack(ids, i, math.min(i + 499, #ids))}
    redis.call('ZREM', KEYS[2], unpack(chunk))
    redis.call('HDEL', KEYS[1], unpack(chunk))
end
return #ids
"""


class RedisPartition(StoragePartition):
    """Hash + sorted set partition sharing the backend's client."""

    def __init__(self, type_prefix: str, backend: "RedisStorageBackend"):
        super().__init__(type_prefix)
        self.backend = backend
        self.elements_key = f"{backend.key_prefix}:{type_prefix}:elements"
        self.expiry_key = f"{backend.key_prefix}:{type_prefix}:expiry"

    def _client(self) -> redis.Redis:
        if self.backend.redis is None:
            raise StorageUnavailableError(self.type_prefix, "Redis client is not started")
        return self.backend.redis

    async def initialize(self) -> None:
        # Keys are created on first write; only the connection needs checking.
        try:
            await self._client().ping()
        except StorageError:
            raise
        except Exception as e:
            raise StorageUnavailableError(self.type_prefix, f"Redis unreachable: {e}") from e

        self.logger.info("Partition ready", partition=self.type_prefix)

    async def get_many(self, ids: Sequence[str]) -> List[CacheEntry]:
        unique_ids = list(dict.fromkeys(ids))
        if not unique_ids:
            return []

        try:
            async with self._client().pipeline(transaction=True) as pipe:
                pipe.hmget(self.elements_key, unique_ids)
                pipe.zmscore(self.expiry_key, unique_ids)
                elements, scores = await pipe.execute()
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(self.type_prefix, f"Read failed: {e}") from e

        entries = []
        for entry_id, element, score in zip(unique_ids, elements, scores):
            if element is None:
                continue
            expires_at = NEVER_EXPIRES if score is None else int(score)
            entries.append(CacheEntry(id=entry_id, expires_at=expires_at, payload=element))
        return entries

    async def put(self, entry: CacheEntry) -> None:
        try:
            async with self._client().pipeline(transaction=True) as pipe:
                pipe.hset(self.elements_key, entry.id, entry.payload)
                if entry.never_expires:
                    pipe.zrem(self.expiry_key, entry.id)
                else:
                    pipe.zadd(self.expiry_key, {entry.id: entry.expires_at})
                await pipe.execute()
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(self.type_prefix, f"Write failed: {e}") from e

    async def delete_expired(self, now: int) -> int:
        try:
            removed = await self.backend.delete_expired_script(
                keys=[self.elements_key, self.expiry_key],
                args=[now],
                client=self._client()
            )
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(self.type_prefix, f"Expiration purge failed: {e}") from e
        return int(removed or 0)

    async def delete(self, entry_id: str) -> None:
        try:
            async with self._client().pipeline(transaction=True) as pipe:
                pipe.hdel(self.elements_key, entry_id)
                pipe.zrem(self.expiry_key, entry_id)
                await pipe.execute()
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(self.type_prefix, f"Delete failed: {e}") from e

    async def delete_all(self) -> None:
        try:
            await self._client().delete(self.elements_key, self.expiry_key)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(self.type_prefix, f"Delete failed: {e}") from e


class RedisStorageBackend(StorageBackend):
    """Storage backend over one shared redis.asyncio client."""

    name = "redis"

    def __init__(self, redis_url: str, key_prefix: str = "offline"):
        super().__init__()
        self.redis_url = redis_url
        self.key_prefix = key_prefix
        self.redis: Optional[redis.Redis] = None
        self.delete_expired_script = None

    async def start(self):
        """Connect to Redis."""
        if self.redis is not None:
            return
        client = redis.from_url(
            self.redis_url,
            socket_connect_timeout=5,
            socket_timeout=5,
            retry_on_timeout=True,
            health_check_interval=30
        )
        try:
            await client.ping()
        except Exception as e:
            self.logger.error("Failed to start Redis storage", error=str(e))
            await client.aclose()
            raise StorageUnavailableError(self.name, str(e)) from e

        self.redis = client
        self.delete_expired_script = client.register_script(DELETE_EXPIRED_SCRIPT)
        self.logger.info("Redis storage started")

    async def stop(self):
        """Close the Redis client."""
        if self.redis:
            await self.redis.aclose()
            self.redis = None
            self.logger.info("Redis storage stopped")

    async def health_check(self) -> bool:
        if self.redis is None:
            return False
        try:
            await self.redis.ping()
            return True
        except Exception:
            return False

    def _create_partition(self, type_prefix: str) -> RedisPartition:
        return RedisPartition(type_prefix, self)

    async def get_stats(self) -> Dict[str, Any]:
        stats = await super().get_stats()
        stats["connected"] = self.redis is not None
        return stats
