"""
Shared fixtures for offline cache tests.
"""

import asyncio
from typing import Any, Dict, List, Optional

import pytest

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from prometheus_client import CollectorRegistry

from shared.metrics import MetricsCollector
from service_offline.app.connectivity.monitor import ConnectivityMonitor
from service_offline.app.models import EntityKind
from service_offline.app.storage.memory import MemoryStorageBackend


START_MS = 1_700_000_000_000


class FakeClock:
    """Millisecond clock advanced by hand."""

    def __init__(self, now: int = START_MS):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, millis: int):
        self.now += millis


class ScriptedRemote:
    """Remote source backed by a dict, recording every call."""

    def __init__(self, entities: Optional[Dict[str, Dict[str, Any]]] = None):
        self.entities = dict(entities or {})
        self.calls: List[List[str]] = []
        self.error: Optional[Exception] = None
        self.error_after: int = 0

    async def __call__(self, ids: List[str]):
        self.calls.append(list(ids))
        served = 0
        for entity_id in ids:
            if self.error is not None and served >= self.error_after:
                raise self.error
            if entity_id in self.entities:
                served += 1
                await asyncio.sleep(0)
                yield self.entities[entity_id]
        if self.error is not None:
            raise self.error


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def remote():
    return ScriptedRemote()


@pytest.fixture
def metrics():
    registry = CollectorRegistry()
    collector = MetricsCollector("offline", registry)
    collector.test_registry = registry
    return collector


@pytest.fixture
def connectivity():
    monitor = ConnectivityMonitor()
    monitor.set_online(True)
    return monitor


@pytest.fixture
def backend():
    return MemoryStorageBackend()


@pytest.fixture
def kind(remote):
    return EntityKind(
        type_prefix="items",
        ttl_millis=180,
        identifier_of=lambda entity: entity["id"],
        fetch_remote=remote
    )
