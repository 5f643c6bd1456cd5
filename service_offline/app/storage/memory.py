"""
In-process storage backend.

Used for local runs and tests. Rows live in plain dicts, so every operation
completes without suspending and concurrent callers never interleave inside
one operation.
"""

from typing import Any, Dict, List, Sequence

from shared.errors import StorageUnavailableError
from ..models import CacheEntry
from .base import StorageBackend, StoragePartition


class MemoryPartition(StoragePartition):
    """Dict-backed partition."""

    def __init__(self, type_prefix: str, tables: Dict[str, Dict[str, CacheEntry]]):
        super().__init__(type_prefix)
        self._tables = tables

    @property
    def rows(self) -> Dict[str, CacheEntry]:
        try:
            return self._tables[self.type_prefix]
        except KeyError:
            raise StorageUnavailableError(self.type_prefix, "Partition not initialized") from None

    async def initialize(self) -> None:
        self._tables.setdefault(self.type_prefix, {})

    async def get_many(self, ids: Sequence[str]) -> List[CacheEntry]:
        rows = self.rows
        return [rows[i] for i in dict.fromkeys(ids) if i in rows]

    async def put(self, entry: CacheEntry) -> None:
        self.rows[entry.id] = entry

    async def delete_expired(self, now: int) -> int:
        rows = self.rows
        expired = [i for i, entry in rows.items() if entry.is_expired(now)]
        for entry_id in expired:
            del rows[entry_id]
        return len(expired)

    async def delete(self, entry_id: str) -> None:
        self.rows.pop(entry_id, None)

    async def delete_all(self) -> None:
        self.rows.clear()


class MemoryStorageBackend(StorageBackend):
    """Storage backend keeping every partition in memory."""

    name = "memory"

    def __init__(self):
        super().__init__()
        self.tables: Dict[str, Dict[str, CacheEntry]] = {}

    def _create_partition(self, type_prefix: str) -> MemoryPartition:
        return MemoryPartition(type_prefix, self.tables)

    async def get_stats(self) -> Dict[str, Any]:
        stats = await super().get_stats()
        stats["rows"] = {name: len(rows) for name, rows in self.tables.items()}
        return stats
