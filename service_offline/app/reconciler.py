"""
Read-through offline cache service.

One ``OfflineService`` serves one entity kind. A ``get_items`` call runs:

1. a throttled expiration sweep,
2. a read of every requested id from local storage (emitted right away),
3. when ids are missing and the remote is reachable, a remote fetch whose
   entities are emitted as they arrive and written back concurrently,
4. completion once every write-back has settled.
"""

import asyncio
import inspect
import time
from typing import Any, AsyncIterator, Callable, Generic, List, Optional, Sequence, Set

from shared.errors import RemoteFetchError
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from .connectivity.monitor import ConnectivityMonitor
from .models import EntityKind, T, expiry_for, now_millis
from .storage.base import StoragePartition
from .sweeper import DEFAULT_INVALIDATION_INTERVAL_MS, ExpirationSweeper


WriteErrorHandler = Callable[[Any, BaseException], None]


class OfflineService(Generic[T]):
    """Local cache of one entity kind in front of its remote source."""

    def __init__(
        self,
        kind: EntityKind[T],
        partition: StoragePartition,
        connectivity: ConnectivityMonitor,
        *,
        invalidation_interval_ms: int = DEFAULT_INVALIDATION_INTERVAL_MS,
        clock: Callable[[], int] = now_millis,
        metrics: Optional[MetricsCollector] = None,
        on_write_error: Optional[WriteErrorHandler] = None,
    ):
        self.kind = kind
        self.partition = partition
        self.connectivity = connectivity
        self.clock = clock
        self.metrics = metrics
        self.on_write_error = on_write_error
        self.sweeper = ExpirationSweeper(partition, invalidation_interval_ms, metrics=metrics)
        self.logger = get_logger("offline.service").bind(kind=kind.type_prefix)

        self.ready = False
        self._pending_writes: Set[asyncio.Task] = set()

    @property
    def type_prefix(self) -> str:
        return self.kind.type_prefix

    @property
    def pending_writes(self) -> int:
        return len(self._pending_writes)

    async def start(self) -> bool:
        """Create the storage partition. Failures are logged, never raised."""
        try:
            await self.partition.initialize()
        except Exception as e:
            self.logger.error("Exception creating partition", error=str(e))
            self.ready = False
            return False

        self.ready = True
        return True

    async def invalidate_all(self) -> None:
        """Drop every cached entity of this kind."""
        await self.partition.delete_all()
        self.logger.info("Invalidated all cached entities")

    async def invalidate(self, entity_id: str) -> None:
        """Drop one cached entity."""
        await self.partition.delete(entity_id)
        self.logger.debug("Invalidated cached entity", entity_id=entity_id)

    async def get_item_list(self, ids: Sequence[str]) -> List[T]:
        """Collect everything ``get_items`` emits."""
        return [entity async for entity in self.get_items(ids)]

    async def get_items(self, ids: Sequence[str]) -> AsyncIterator[T]:
        """Yield the entities for ``ids``, cached ones first.

        Order is not guaranteed and ids that are neither cached nor supplied
        by the remote yield nothing. A storage read failure ends the stream
        empty. A remote failure raises ``RemoteFetchError`` after writes of
        the entities already received have settled.
        """
        ids = list(ids)
        if not ids:
            return

        await self.sweeper.sweep(self.clock())

        try:
            entries = await self.partition.get_many(ids)
        except Exception as e:
            self.logger.error("Exception getting elements", error=str(e), requested=len(ids))
            return

        have_ids = set()
        for entry in entries:
            try:
                element = self.kind.deserialize(entry.payload)
            except Exception as e:
                self.logger.warning("Discarding undecodable cached element", entity_id=entry.id, error=str(e))
                continue
            have_ids.add(entry.id)
            yield element

        need_ids = [i for i in dict.fromkeys(ids) if i not in have_ids]
        self._record("offline_cache_hits_total", len(have_ids))
        self._record("offline_cache_misses_total", len(need_ids))

        if not need_ids:
            return

        if not self.connectivity.is_online:
            self.logger.debug("Offline; serving cached elements only", missing=len(need_ids))
            return

        expires_at = expiry_for(self.kind.ttl_millis, self.clock())
        writes: List[asyncio.Task] = []
        started = time.perf_counter()

        try:
            async for entity in self._fetch_remote(need_ids):
                writes.append(self._schedule_write(entity, expires_at))
                yield entity
        except Exception as e:
            self._record("offline_remote_fetch_total", result="error")
            self._record_error("remote_fetch")
            self.logger.error("Exception fetching remote elements", error=str(e), requested=len(need_ids))
            await self._settle(writes)
            if isinstance(e, RemoteFetchError):
                raise
            raise RemoteFetchError(self.type_prefix, str(e), details={"requested": len(need_ids)}) from e

        self._record("offline_remote_fetch_total", result="ok")
        self._observe_fetch(time.perf_counter() - started)
        self.logger.debug("Fetched remote elements", requested=len(need_ids), returned=len(writes))

        await self._settle(writes)

    async def wait_for_pending_writes(self) -> None:
        """Wait for write-backs still running, including abandoned streams."""
        if self._pending_writes:
            await asyncio.wait(list(self._pending_writes))

    async def _fetch_remote(self, ids: List[str]) -> AsyncIterator[T]:
        result = self.kind.fetch_remote(ids)
        if inspect.isawaitable(result):
            result = await result

        if hasattr(result, "__aiter__"):
            async for entity in result:
                yield entity
        else:
            for entity in result or ():
                yield entity

    def _schedule_write(self, entity: T, expires_at: int) -> asyncio.Task:
        # Tasks are held here so a caller dropping the stream cannot
        # cancel or garbage-collect an in-flight write.
        task = asyncio.create_task(self._write(entity, expires_at))
        self._pending_writes.add(task)
        task.add_done_callback(self._pending_writes.discard)
        return task

    async def _write(self, entity: T, expires_at: int) -> bool:
        try:
            entry = self.kind.entry_for(entity, expires_at)
            await self.partition.put(entry)
        except Exception as e:
            self._report_write_failure(entity, e)
            return False

        self._record("offline_cache_writes_total", result="ok")
        return True

    def _report_write_failure(self, entity: T, error: Exception) -> None:
        self._record("offline_cache_writes_total", result="error")
        self.logger.error("Exception storing element", error=str(error))

        if self.on_write_error is None:
            return
        try:
            self.on_write_error(entity, error)
        except Exception as e:
            self.logger.error("Write error handler failed", error=str(e))

    async def _settle(self, writes: List[asyncio.Task]) -> None:
        # asyncio.wait leaves the writes running if this caller is cancelled.
        if writes:
            await asyncio.wait(writes)

    def _record(self, metric_name: str, amount: int = 1, **labels) -> None:
        if not self.metrics:
            return
        try:
            self.metrics.increment_counter(metric_name, amount, kind=self.type_prefix, **labels)
        except Exception as exc:  # pragma: no cover - metrics failures never break a request
            self.logger.debug("Failed to record metrics", metric=metric_name, error=str(exc))

    def _record_error(self, error_type: str) -> None:
        if not self.metrics:
            return
        try:
            self.metrics.record_error(error_type)
        except Exception as exc:  # pragma: no cover
            self.logger.debug("Failed to record error metric", error=str(exc))

    def _observe_fetch(self, duration: float) -> None:
        if not self.metrics:
            return
        try:
            self.metrics.observe_histogram("offline_remote_fetch_duration_seconds", duration, kind=self.type_prefix)
        except Exception as exc:  # pragma: no cover
            self.logger.debug("Failed to record fetch duration", error=str(exc))
