"""
Storage interfaces for the offline cache.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Sequence

from shared.logging import get_logger
from ..models import CacheEntry, validate_type_prefix


class StoragePartition(ABC):
    """Rows of one entity kind: (id, ttl, element)."""

    def __init__(self, type_prefix: str):
        self.type_prefix = validate_type_prefix(type_prefix)
        self.logger = get_logger(f"offline.storage.{type_prefix}")

    @abstractmethod
    async def initialize(self) -> None:
        """Create the partition if it does not exist yet."""

    @abstractmethod
    async def get_many(self, ids: Sequence[str]) -> List[CacheEntry]:
        """Return the rows whose id is in ``ids``."""

    @abstractmethod
    async def put(self, entry: CacheEntry) -> None:
        """Insert a row, overwriting any row with the same id."""

    @abstractmethod
    async def delete_expired(self, now: int) -> int:
        """Delete rows where ttl != -1 and ttl < now. Returns the count."""

    @abstractmethod
    async def delete(self, entry_id: str) -> None:
        """Delete the row with the given id."""

    @abstractmethod
    async def delete_all(self) -> None:
        """Delete every row of the partition."""

    async def put_many(self, entries: Iterable[CacheEntry]) -> List[bool]:
        """Write entries concurrently and report per-entry success."""
        entries = list(entries)
        results = await asyncio.gather(*(self.put(e) for e in entries), return_exceptions=True)

        outcome = []
        for entry, result in zip(entries, results):
            if isinstance(result, BaseException):
                self.logger.error("Failed to store entry", entry_id=entry.id, error=str(result))
                outcome.append(False)
            else:
                outcome.append(True)
        return outcome


class StorageBackend(ABC):
    """Owns the shared storage connection and hands out partitions."""

    name = "storage"

    def __init__(self):
        self.logger = get_logger(f"offline.storage.{self.name}")
        self._partitions: Dict[str, StoragePartition] = {}

    async def start(self) -> None:
        """Open the shared connection."""

    async def stop(self) -> None:
        """Close the shared connection."""

    async def health_check(self) -> bool:
        return True

    def partition(self, type_prefix: str) -> StoragePartition:
        """Get or create the partition for an entity kind."""
        if type_prefix not in self._partitions:
            self._partitions[type_prefix] = self._create_partition(type_prefix)
        return self._partitions[type_prefix]

    @abstractmethod
    def _create_partition(self, type_prefix: str) -> StoragePartition:
        """Build a partition bound to this backend's connection."""

    async def get_stats(self) -> Dict[str, Any]:
        return {
            "backend": self.name,
            "partitions": sorted(self._partitions),
        }
