"""
Throttled expiration purge.
"""

from typing import Optional

from shared.logging import get_logger
from shared.metrics import MetricsCollector
from .storage.base import StoragePartition


DEFAULT_INVALIDATION_INTERVAL_MS = 5000


class ExpirationSweeper:
    """Deletes expired rows of one partition at most once per interval."""

    def __init__(
        self,
        partition: StoragePartition,
        invalidation_interval_ms: int = DEFAULT_INVALIDATION_INTERVAL_MS,
        *,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.partition = partition
        self.invalidation_interval_ms = invalidation_interval_ms
        self.metrics = metrics
        self.logger = get_logger(f"offline.sweeper.{partition.type_prefix}")
        self.last_sweep_at = 0

    async def sweep(self, now: int) -> bool:
        """Purge entries with ttl < now unless a purge ran within the interval.

        Returns True when a purge was attempted. Purge failures are logged and
        never raised.
        """
        if now - self.last_sweep_at < self.invalidation_interval_ms:
            return False

        # Claim the window before suspending so overlapping calls skip it.
        self.last_sweep_at = now

        try:
            removed = await self.partition.delete_expired(now)
        except Exception as e:
            self.logger.error("Exception removing expired entities", error=str(e))
            self._record("error")
            return True

        if removed:
            self.logger.debug("Removed expired entities", removed=removed)
        self._record("ok")
        return True

    def _record(self, result: str) -> None:
        if not self.metrics:
            return
        try:
            self.metrics.increment_counter(
                "offline_cache_sweeps_total",
                kind=self.partition.type_prefix,
                result=result
            )
        except Exception as exc:  # pragma: no cover - metrics failures never break a sweep
            self.logger.debug("Failed to record sweep metrics", error=str(exc))
