"""
Reachability probes.
"""

import httpx

from shared.logging import get_logger


class HttpReachabilityProbe:
    """Treat the remote as reachable when an HTTP request completes below 500."""

    def __init__(self, url: str, timeout: float = 5.0):
        self.url = url
        self.timeout = timeout
        self.logger = get_logger("offline.connectivity.probe")

    async def __call__(self) -> bool:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.head(self.url)
        except httpx.HTTPError as exc:
            self.logger.debug("Reachability probe failed", url=self.url, error=str(exc))
            return False

        reachable = response.status_code < 500
        if not reachable:
            self.logger.debug("Reachability probe got server error", url=self.url, status_code=response.status_code)
        return reachable
