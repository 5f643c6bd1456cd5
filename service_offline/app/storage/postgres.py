"""
PostgreSQL storage backend for the offline cache.

One table per entity kind, named after the kind's type prefix:

    id       TEXT PRIMARY KEY
    ttl      BIGINT    expiration millis, -1 = never expires
    element  BYTEA
"""

from typing import Any, Dict, List, Optional, Sequence

import asyncpg

from shared.errors import StorageError, StorageUnavailableError
from ..models import CacheEntry, NEVER_EXPIRES
from .base import StorageBackend, StoragePartition


def _deleted_count(status: str) -> int:
    """Parse the row count out of an asyncpg command status like 'DELETE 3'."""
    try:
        return int(status.rsplit(" ", 1)[-1])
    except (AttributeError, ValueError):
        return 0


class PostgresPartition(StoragePartition):
    """Table-backed partition sharing the backend's pool."""

    def __init__(self, type_prefix: str, backend: "PostgresStorageBackend"):
        super().__init__(type_prefix)
        self.backend = backend
        table = f'"{self.type_prefix}"'

        # SQL statements
        self.sql_create = f"""
            CREATE TABLE IF NOT EXISTS {table} (
                id TEXT PRIMARY KEY,
                ttl BIGINT NOT NULL,
                element BYTEA NOT NULL
            )
        """
        self.sql_delete_all = f"DELETE FROM {table}"
        self.sql_delete_id = f"DELETE FROM {table} WHERE id = $1"
        self.sql_delete_expired = f"DELETE FROM {table} WHERE ttl <> {NEVER_EXPIRES} AND ttl < $1"
        self.sql_get_elements = f"SELECT id, ttl, element FROM {table} WHERE id = ANY($1::text[])"
        self.sql_add_element = f"""
            INSERT INTO {table} (id, ttl, element) VALUES ($1, $2, $3)
            ON CONFLICT (id) DO UPDATE SET
                ttl = EXCLUDED.ttl,
                element = EXCLUDED.element
        """

    def _pool(self) -> asyncpg.Pool:
        if self.backend.pool is None:
            raise StorageUnavailableError(self.type_prefix, "PostgreSQL pool is not started")
        return self.backend.pool

    async def initialize(self) -> None:
        try:
            async with self._pool().acquire() as conn:
                await conn.execute(self.sql_create)
        except StorageError:
            raise
        except Exception as e:
            raise StorageUnavailableError(self.type_prefix, f"Could not create table: {e}") from e

        self.logger.info("Partition ready", partition=self.type_prefix)

    async def get_many(self, ids: Sequence[str]) -> List[CacheEntry]:
        unique_ids = list(dict.fromkeys(ids))
        try:
            async with self._pool().acquire() as conn:
                rows = await conn.fetch(self.sql_get_elements, unique_ids)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(self.type_prefix, f"Select failed: {e}") from e

        return [
            CacheEntry(id=row["id"], expires_at=row["ttl"], payload=bytes(row["element"]))
            for row in rows
        ]

    async def put(self, entry: CacheEntry) -> None:
        await self._execute(self.sql_add_element, entry.id, entry.expires_at, entry.payload)

    async def delete_expired(self, now: int) -> int:
        return _deleted_count(await self._execute(self.sql_delete_expired, now))

    async def delete(self, entry_id: str) -> None:
        await self._execute(self.sql_delete_id, entry_id)

    async def delete_all(self) -> None:
        await self._execute(self.sql_delete_all)

    async def _execute(self, sql: str, *args) -> str:
        try:
            async with self._pool().acquire() as conn:
                return await conn.execute(sql, *args)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(self.type_prefix, str(e)) from e


class PostgresStorageBackend(StorageBackend):
    """Storage backend over an asyncpg connection pool."""

    name = "postgres"

    def __init__(self, dsn: str, min_size: int = 1, max_size: int = 10, command_timeout: float = 30):
        super().__init__()
        self.dsn = dsn
        self.min_size = min_size
        self.max_size = max_size
        self.command_timeout = command_timeout
        self.pool: Optional[asyncpg.Pool] = None

    async def start(self):
        """Create the connection pool."""
        if self.pool is not None:
            return
        try:
            self.pool = await asyncpg.create_pool(
                self.dsn,
                min_size=self.min_size,
                max_size=self.max_size,
                command_timeout=self.command_timeout
            )
            self.logger.info("PostgreSQL storage started")

        except Exception as e:
            self.logger.error("Failed to start PostgreSQL storage", error=str(e))
            raise StorageUnavailableError(self.name, str(e)) from e

    async def stop(self):
        """Close the connection pool."""
        if self.pool:
            await self.pool.close()
            self.pool = None
            self.logger.info("PostgreSQL storage stopped")

    async def health_check(self) -> bool:
        if self.pool is None:
            return False
        try:
            async with self.pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
            return True
        except Exception:
            return False

    def _create_partition(self, type_prefix: str) -> PostgresPartition:
        return PostgresPartition(type_prefix, self)

    async def get_stats(self) -> Dict[str, Any]:
        stats = await super().get_stats()
        stats["connected"] = self.pool is not None
        return stats
