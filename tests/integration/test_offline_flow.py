"""
Integration tests for the offline cache flow against an HTTP remote.
"""

import httpx
import pytest
import pytest_asyncio

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from shared.config import get_config
from shared.errors import RemoteFetchError
from shared.retry import RetryConfig
from service_offline.app.adapters.remote_fetcher import HttpRemoteFetcher
from service_offline.app.connectivity.monitor import ConnectivityMonitor
from service_offline.app.listings import LISTING_TYPE_PREFIX, ListingDTO, listing_kind
from service_offline.app.manager import OfflineCacheManager
from service_offline.app.storage.memory import MemoryStorageBackend


class FakeListingsRemote:
    """In-process listings endpoint with a reachability switch."""

    def __init__(self):
        self.up = True
        self.listings = {
            "l1": {"id": "l1", "title": "Loft"},
            "l2": {"id": "l2", "title": "Studio"},
        }
        self.requested = []

    def handle(self, request: httpx.Request) -> httpx.Response:
        if not self.up:
            raise httpx.ConnectError("remote unreachable", request=request)
        if request.url.path != "/listings":
            return httpx.Response(404)

        ids = request.url.params.get_list("ids")
        self.requested.append(ids)
        return httpx.Response(200, json={"items": [self.listings[i] for i in ids if i in self.listings]})

    async def probe(self) -> bool:
        return self.up


class TestOfflineFlow:
    """End-to-end flow through manager, storage, connectivity and fetcher."""

    @pytest.fixture
    def remote(self):
        return FakeListingsRemote()

    @pytest.fixture
    def clock(self):
        now = [1_700_000_000_000]

        def clock():
            return now[0]

        clock.now = now
        return clock

    @pytest_asyncio.fixture
    async def manager(self, remote, clock):
        async with httpx.AsyncClient(transport=httpx.MockTransport(remote.handle)) as client:
            fetcher = HttpRemoteFetcher(
                "http://remote.test",
                "/listings",
                ListingDTO.model_validate,
                source="listings",
                client=client,
                retry_config=RetryConfig(max_attempts=1)
            )
            manager = OfflineCacheManager(
                get_config(invalidation_interval_ms=1000),
                MemoryStorageBackend(),
                ConnectivityMonitor(remote.probe),
                clock=clock
            )
            manager.register(listing_kind(fetcher))
            await manager.start()
            yield manager
            await manager.stop()

    @pytest.mark.asyncio
    async def test_online_then_offline(self, manager, remote):
        service = manager.service(LISTING_TYPE_PREFIX)

        online = await service.get_item_list(["l1", "l2", "missing"])
        assert sorted(l.id for l in online) == ["l1", "l2"]
        assert remote.requested == [["l1", "l2", "missing"]]

        remote.up = False
        await manager.connectivity.check_now()
        assert manager.connectivity.is_online is False

        offline = await service.get_item_list(["l1", "l2", "missing"])
        assert sorted(l.id for l in offline) == ["l1", "l2"]
        assert len(remote.requested) == 1

    @pytest.mark.asyncio
    async def test_only_missing_ids_requested(self, manager, remote):
        service = manager.service(LISTING_TYPE_PREFIX)
        await service.get_item_list(["l1"])

        listings = await service.get_item_list(["l1", "l2"])

        assert sorted(l.id for l in listings) == ["l1", "l2"]
        assert remote.requested == [["l1"], ["l2"]]

    @pytest.mark.asyncio
    async def test_expired_listings_refetched(self, manager, remote, clock):
        service = manager.service(LISTING_TYPE_PREFIX)
        await service.get_item_list(["l1"])
        remote.listings["l1"]["title"] = "Renovated loft"

        clock.now[0] += 1000 + 181

        listings = await service.get_item_list(["l1"])

        assert [l.title for l in listings] == ["Renovated loft"]
        assert remote.requested == [["l1"], ["l1"]]

    @pytest.mark.asyncio
    async def test_unreachable_remote_while_marked_online(self, manager, remote):
        service = manager.service(LISTING_TYPE_PREFIX)
        await service.get_item_list(["l1"])
        remote.up = False

        received = []
        with pytest.raises(RemoteFetchError):
            async for listing in service.get_items(["l1", "l2"]):
                received.append(listing.id)

        assert received == ["l1"]

    @pytest.mark.asyncio
    async def test_invalidate_all(self, manager, remote):
        service = manager.service(LISTING_TYPE_PREFIX)
        await service.get_item_list(["l1"])

        await service.invalidate_all()
        remote.up = False
        await manager.connectivity.check_now()

        assert await service.get_item_list(["l1"]) == []
        stats = await manager.get_cache_stats()
        assert stats["storage"]["rows"] == {LISTING_TYPE_PREFIX: 0}
