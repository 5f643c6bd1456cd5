"""
Reachability tracking for the remote source.
"""

import asyncio
from typing import Awaitable, Callable, List, Optional

from shared.logging import get_logger
from shared.metrics import MetricsCollector


Probe = Callable[[], Awaitable[bool]]
Listener = Callable[[bool], None]


class ConnectivityMonitor:
    """Current-value cell for "is the remote reachable right now".

    The value is seeded by one probe sample on ``start()``, refreshed by a
    background probe loop, and can be pushed at any time by an external
    event source through ``set_online()``. Without a probe the monitor
    reports offline until something pushes a value.
    """

    def __init__(
        self,
        probe: Optional[Probe] = None,
        *,
        interval_seconds: float = 30.0,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.probe = probe
        self.interval_seconds = interval_seconds
        self.metrics = metrics
        self.logger = get_logger("offline.connectivity")

        self._online = False
        self._listeners: List[Listener] = []
        self._probe_task: Optional[asyncio.Task] = None
        self.running = False

    @property
    def is_online(self) -> bool:
        return self._online

    def set_online(self, online: bool) -> None:
        """Record the latest reachability and notify listeners on transitions."""
        online = bool(online)
        changed = online != self._online
        self._online = online

        if self.metrics:
            try:
                self.metrics.record_connectivity(online)
            except Exception as exc:  # pragma: no cover
                self.logger.debug("Failed to record connectivity metric", error=str(exc))

        if not changed:
            return

        self.logger.info("Connectivity changed", online=online)
        for listener in list(self._listeners):
            try:
                listener(online)
            except Exception as exc:
                self.logger.error("Connectivity listener failed", error=str(exc))

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a transition listener. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def check_now(self) -> bool:
        """Sample the probe once and record the result."""
        if self.probe is None:
            return self._online

        try:
            online = bool(await self.probe())
        except Exception as exc:
            self.logger.warning("Connectivity probe failed", error=str(exc))
            online = False

        self.set_online(online)
        return online

    async def start(self, start_loop: bool = True):
        """Take the initial sample and start the probe loop."""
        if self.running:
            return
        self.running = True

        if self.probe is None:
            self.logger.warning("No connectivity probe configured; reporting offline")
            self.set_online(self._online)
            return

        await self.check_now()
        if start_loop:
            self._probe_task = asyncio.create_task(self._probe_loop())
        self.logger.info("Connectivity monitor started", online=self._online)

    async def stop(self):
        """Stop the probe loop."""
        self.running = False
        if self._probe_task:
            self._probe_task.cancel()
            try:
                await self._probe_task
            except asyncio.CancelledError:
                pass
            self._probe_task = None
        self.logger.info("Connectivity monitor stopped")

    async def _probe_loop(self):
        while self.running:
            await asyncio.sleep(self.interval_seconds)
            await self.check_now()
