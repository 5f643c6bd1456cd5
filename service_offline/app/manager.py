"""
Offline cache manager for several entity kinds.

All kinds share one storage backend connection and one connectivity monitor;
each kind gets its own partition, sweep throttle and service instance.
"""

from typing import Any, Callable, Dict, Optional

from shared.config import OfflineCacheConfig, get_config
from shared.errors import ValidationError
from shared.logging import configure_logging, get_logger
from shared.metrics import MetricsCollector, get_metrics_collector
from .adapters.remote_fetcher import HttpRemoteFetcher
from .connectivity.monitor import ConnectivityMonitor
from .connectivity.probes import HttpReachabilityProbe
from .listings import ListingDTO, listing_kind
from .models import EntityKind, now_millis
from .reconciler import OfflineService, WriteErrorHandler
from .storage.base import StorageBackend
from .storage.factory import create_storage_backend


class OfflineCacheManager:
    """Registry and lifecycle of the offline services."""

    def __init__(
        self,
        config: Optional[OfflineCacheConfig] = None,
        backend: Optional[StorageBackend] = None,
        connectivity: Optional[ConnectivityMonitor] = None,
        *,
        metrics: Optional[MetricsCollector] = None,
        clock: Callable[[], int] = now_millis,
    ):
        self.config = config or get_config()
        self.logger = get_logger("offline.manager")
        self.metrics = metrics
        self.clock = clock
        self.backend = backend or create_storage_backend(self.config)
        self.connectivity = connectivity or self._create_monitor()

        self._services: Dict[str, OfflineService] = {}
        self.storage_available = False

    def _create_monitor(self) -> ConnectivityMonitor:
        probe = None
        if self.config.connectivity_probe_url:
            probe = HttpReachabilityProbe(
                self.config.connectivity_probe_url,
                timeout=self.config.connectivity_probe_timeout_seconds
            )
        return ConnectivityMonitor(
            probe,
            interval_seconds=self.config.connectivity_probe_interval_seconds,
            metrics=self.metrics
        )

    def register(self, kind: EntityKind, *, on_write_error: Optional[WriteErrorHandler] = None) -> OfflineService:
        """Create the service for an entity kind.

        Kinds registered after ``start()`` are initialized by the next
        ``start()`` call; use ``register_and_start()`` to initialize at once.
        """
        if kind.type_prefix in self._services:
            raise ValidationError(
                "Entity kind already registered",
                details={"type_prefix": kind.type_prefix}
            )

        service = OfflineService(
            kind,
            self.backend.partition(kind.type_prefix),
            self.connectivity,
            invalidation_interval_ms=self.config.invalidation_interval_ms,
            clock=self.clock,
            metrics=self.metrics,
            on_write_error=on_write_error
        )
        self._services[kind.type_prefix] = service
        self.logger.info("Registered entity kind", kind=kind.type_prefix, ttl_ms=kind.ttl_millis)
        return service

    async def register_and_start(
        self,
        kind: EntityKind,
        *,
        on_write_error: Optional[WriteErrorHandler] = None
    ) -> OfflineService:
        """Register a kind and create its partition if storage is already up."""
        service = self.register(kind, on_write_error=on_write_error)
        if self.storage_available:
            await service.start()
        return service

    def service(self, type_prefix: str) -> OfflineService:
        try:
            return self._services[type_prefix]
        except KeyError:
            raise ValidationError("Unknown entity kind", details={"type_prefix": type_prefix}) from None

    @property
    def services(self) -> Dict[str, OfflineService]:
        return dict(self._services)

    async def start(self):
        """Connect storage, create partitions and start connectivity tracking.

        Storage failures are logged and leave the affected kinds serving
        nothing from cache; they are not raised.
        """
        if not self.storage_available:
            try:
                await self.backend.start()
                self.storage_available = True
            except Exception as e:
                self.logger.error("Storage unavailable; caching disabled", backend=self.backend.name, error=str(e))

        if self.storage_available:
            for service in self._services.values():
                if not service.ready:
                    await service.start()

        if not self.connectivity.running:
            await self.connectivity.start()

        self.logger.info(
            "Offline cache started",
            backend=self.backend.name,
            storage_available=self.storage_available,
            kinds=sorted(self._services),
            online=self.connectivity.is_online
        )

    async def stop(self):
        """Drain write-backs, then stop connectivity tracking and storage."""
        for service in self._services.values():
            await service.wait_for_pending_writes()

        await self.connectivity.stop()

        if self.storage_available:
            await self.backend.stop()
            self.storage_available = False

        self.logger.info("Offline cache stopped")

    async def get_cache_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        try:
            storage = await self.backend.get_stats()
        except Exception as e:
            self.logger.error("Cache stats error", error=str(e))
            storage = {"error": str(e)}

        return {
            "storage": storage,
            "storage_available": self.storage_available,
            "online": self.connectivity.is_online,
            "kinds": {
                prefix: self._kind_stats(service)
                for prefix, service in self._services.items()
            },
        }

    def _kind_stats(self, service: OfflineService) -> Dict[str, Any]:
        stats = {
            "ready": service.ready,
            "ttl_ms": service.kind.ttl_millis,
            "last_sweep_at": service.sweeper.last_sweep_at,
            "pending_writes": service.pending_writes,
        }
        # Only fetchers that expose diagnostics, such as HttpRemoteFetcher
        remote_stats = getattr(service.kind.fetch_remote, "get_stats", None)
        if callable(remote_stats):
            stats["remote"] = remote_stats()
        return stats


def create_offline_cache(config: Optional[OfflineCacheConfig] = None, *, with_listings: bool = True) -> OfflineCacheManager:
    """Build a manager from configuration, with logging and metrics set up."""
    config = config or get_config()
    configure_logging(config.service_name, config.log_level)

    metrics = get_metrics_collector(config.service_name)
    if config.metrics_port:
        metrics.start_metrics_server(config.metrics_port)

    manager = OfflineCacheManager(config, metrics=metrics)

    if with_listings:
        fetcher = HttpRemoteFetcher(
            config.remote_base_url,
            "/listings",
            ListingDTO.model_validate,
            source="listings",
            timeout=config.remote_timeout_seconds
        )
        manager.register(listing_kind(fetcher, ttl_millis=config.listing_ttl_ms))

    return manager
