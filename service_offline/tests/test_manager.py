"""
Unit tests for the offline cache manager.
"""

import asyncio

import pytest
from unittest.mock import AsyncMock, patch

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from shared.config import get_config
from shared.errors import StorageUnavailableError, ValidationError
from service_offline.app.adapters.remote_fetcher import HttpRemoteFetcher
from service_offline.app.connectivity.monitor import ConnectivityMonitor
from service_offline.app.connectivity.probes import HttpReachabilityProbe
from service_offline.app.listings import LISTING_TYPE_PREFIX
from service_offline.app.manager import OfflineCacheManager, create_offline_cache
from service_offline.app.models import EntityKind
from service_offline.app.storage.memory import MemoryStorageBackend


class TestOfflineCacheManager:
    """Test cases for OfflineCacheManager."""

    @pytest.fixture
    def manager(self, backend, connectivity, metrics, clock):
        return OfflineCacheManager(
            get_config(invalidation_interval_ms=1000),
            backend,
            connectivity,
            metrics=metrics,
            clock=clock
        )

    def test_register(self, manager, kind):
        service = manager.register(kind)

        assert manager.service("items") is service
        assert service.sweeper.invalidation_interval_ms == 1000
        assert service.partition is manager.backend.partition("items")
        assert list(manager.services) == ["items"]

    def test_register_duplicate(self, manager, kind):
        manager.register(kind)

        with pytest.raises(ValidationError):
            manager.register(kind)

    def test_unknown_service(self, manager):
        with pytest.raises(ValidationError) as exc_info:
            manager.service("missing")

        assert exc_info.value.details == {"type_prefix": "missing"}

    @pytest.mark.asyncio
    async def test_start_initializes_services(self, manager, kind, remote):
        remote.entities["a"] = {"id": "a"}
        service = manager.register(kind)

        await manager.start()

        assert manager.storage_available is True
        assert service.ready is True
        assert manager.connectivity.running is True
        assert await service.get_item_list(["a"]) == [{"id": "a"}]

        await manager.stop()

    @pytest.mark.asyncio
    async def test_kind_registered_after_start(self, manager, kind):
        await manager.start()
        service = manager.register(kind)
        assert service.ready is False

        await manager.start()

        assert service.ready is True
        await manager.stop()

    @pytest.mark.asyncio
    async def test_storage_unavailable_is_not_raised(self, manager, kind, remote):
        remote.entities["a"] = {"id": "a"}
        service = manager.register(kind)

        with patch.object(manager.backend, "start", new_callable=AsyncMock) as mock_start:
            mock_start.side_effect = StorageUnavailableError("memory", "refused")
            await manager.start()

        assert manager.storage_available is False
        assert service.ready is False
        assert await service.get_item_list(["a"]) == []
        assert remote.calls == []

        await manager.stop()

    @pytest.mark.asyncio
    async def test_stop_drains_writes(self, manager, kind, remote):
        remote.entities["a"] = {"id": "a"}
        service = manager.register(kind)
        await manager.start()

        release = asyncio.Event()
        original_put = service.partition.put

        async def slow_put(entry):
            await release.wait()
            await original_put(entry)

        stream = service.get_items(["a"])
        with patch.object(service.partition, "put", side_effect=slow_put):
            assert await stream.__anext__() == {"id": "a"}
            await stream.aclose()
            assert service.pending_writes == 1

            stopping = asyncio.create_task(manager.stop())
            await asyncio.sleep(0)
            assert not stopping.done()

            release.set()
            await stopping

        assert service.pending_writes == 0
        assert manager.storage_available is False

    @pytest.mark.asyncio
    async def test_get_cache_stats(self, manager, kind):
        manager.register(kind)
        await manager.start()

        stats = await manager.get_cache_stats()

        assert stats["storage"]["backend"] == "memory"
        assert stats["storage_available"] is True
        assert stats["online"] is True
        assert stats["kinds"]["items"] == {
            "ready": True,
            "ttl_ms": 180,
            "last_sweep_at": 0,
            "pending_writes": 0,
        }
        await manager.stop()

    @pytest.mark.asyncio
    async def test_sweep_throttle_is_per_kind(self, manager, kind, remote, clock):
        other_kind = EntityKind(
            type_prefix="others",
            ttl_millis=180,
            identifier_of=lambda entity: entity["id"],
            fetch_remote=remote
        )
        first = manager.register(kind)
        second = manager.register(other_kind)
        await manager.start()

        with patch.object(first.partition, "delete_expired", new_callable=AsyncMock) as first_sweep, \
                patch.object(second.partition, "delete_expired", new_callable=AsyncMock) as second_sweep:
            first_sweep.return_value = 0
            second_sweep.return_value = 0

            await first.get_item_list(["a"])
            clock.advance(10)
            await second.get_item_list(["a"])
            clock.advance(10)
            await first.get_item_list(["a"])

        first_sweep.assert_awaited_once()
        second_sweep.assert_awaited_once()
        assert first.sweeper.last_sweep_at != second.sweeper.last_sweep_at
        await manager.stop()

    @pytest.mark.asyncio
    async def test_register_and_start_after_start(self, manager, kind, remote):
        remote.entities["a"] = {"id": "a"}
        await manager.start()

        service = await manager.register_and_start(kind)

        assert service.ready is True
        assert await service.get_item_list(["a"]) == [{"id": "a"}]
        assert [r.id for r in await service.partition.get_many(["a"])] == ["a"]
        await manager.stop()

    @pytest.mark.asyncio
    async def test_register_and_start_before_start(self, manager, kind):
        service = await manager.register_and_start(kind)

        assert service.ready is False
        assert manager.service("items") is service

    @pytest.mark.asyncio
    async def test_stats_include_remote_diagnostics(self, manager):
        fetcher = HttpRemoteFetcher("http://remote.test", "/items", source="items")
        manager.register(EntityKind(
            type_prefix="remote_items",
            ttl_millis=180,
            identifier_of=lambda entity: entity["id"],
            fetch_remote=fetcher
        ))

        stats = await manager.get_cache_stats()

        remote_stats = stats["kinds"]["remote_items"]["remote"]
        assert remote_stats["url"] == "http://remote.test/items"
        assert remote_stats["circuit_breaker"]["state"] == "closed"

    def test_monitor_built_from_config(self, backend):
        manager = OfflineCacheManager(
            get_config(connectivity_probe_url="http://remote.test/health", connectivity_probe_interval_seconds=7),
            backend
        )

        assert isinstance(manager.connectivity.probe, HttpReachabilityProbe)
        assert manager.connectivity.probe.url == "http://remote.test/health"
        assert manager.connectivity.interval_seconds == 7

    def test_monitor_without_probe(self, backend):
        manager = OfflineCacheManager(get_config(), backend)

        assert isinstance(manager.connectivity, ConnectivityMonitor)
        assert manager.connectivity.probe is None


class TestCreateOfflineCache:
    """Test cases for create_offline_cache."""

    def test_registers_listings(self):
        config = get_config(service_name="offline-test", remote_base_url="http://remote.test", listing_ttl_ms=600)

        manager = create_offline_cache(config)

        service = manager.service(LISTING_TYPE_PREFIX)
        assert isinstance(manager.backend, MemoryStorageBackend)
        assert service.kind.ttl_millis == 600
        assert isinstance(service.kind.fetch_remote, HttpRemoteFetcher)
        assert service.kind.fetch_remote.base_url == "http://remote.test"
        assert service.kind.fetch_remote.path == "/listings"
        assert service.metrics is manager.metrics

    def test_without_listings(self):
        manager = create_offline_cache(get_config(service_name="offline-test"), with_listings=False)

        assert manager.services == {}

    def test_storage_backend_from_config(self):
        manager = create_offline_cache(
            get_config(service_name="offline-test", storage_backend="redis", redis_key_prefix="cache"),
            with_listings=False
        )

        assert manager.backend.name == "redis"
        assert manager.backend.key_prefix == "cache"
