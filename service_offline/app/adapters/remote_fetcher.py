"""
HTTP remote fetcher for cache entities.
"""

from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Sequence

import httpx

from shared.logging import get_logger
from shared.errors import RemoteFetchError
from shared.circuit_breaker import CircuitBreaker
from shared.retry import retry_on_exception, RetryConfig


async def empty_fetcher(ids: Sequence[str]) -> List[Any]:
    """Remote source that never supplies anything."""
    return []


class HttpRemoteFetcher:
    """Batch-fetch entities by id from an HTTP endpoint.

    Issues ``GET {base_url}{path}?ids=a&ids=b`` and accepts either a JSON list
    or an object with an ``items`` list. A 404 means none of the ids exist.
    Transport errors are retried; anything still failing surfaces as
    ``RemoteFetchError``.
    """

    def __init__(
        self,
        base_url: str,
        path: str,
        entity_factory: Callable[[Dict[str, Any]], Any] = dict,
        *,
        source: str = "remote",
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
        retry_config: Optional[RetryConfig] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ):
        self.base_url = base_url.rstrip('/')
        self.path = path if path.startswith('/') else f"/{path}"
        self.entity_factory = entity_factory
        self.source = source
        self.timeout = timeout
        self.client = client
        self.logger = get_logger(f"offline.fetcher.{source}")

        self.circuit_breaker = circuit_breaker or CircuitBreaker(
            failure_threshold=3,
            recovery_timeout=30.0,
            name=source
        )

        self.retry_config = retry_config or RetryConfig(
            max_attempts=3,
            base_delay=0.5,
            max_delay=5.0,
            exponential_base=2.0,
            jitter=True
        )

    def __call__(self, ids: Sequence[str]) -> AsyncIterator[Any]:
        return self.fetch(ids)

    def get_stats(self) -> Dict[str, Any]:
        """Endpoint and circuit breaker state for diagnostics."""
        return {
            "source": self.source,
            "url": f"{self.base_url}{self.path}",
            "circuit_breaker": self.circuit_breaker.get_state(),
        }

    async def fetch(self, ids: Sequence[str]) -> AsyncIterator[Any]:
        """Yield the entities the remote returns for ``ids``."""
        if not ids:
            return

        items = await self._fetch_items(list(ids))
        for item in items:
            yield self.entity_factory(item)

    async def _fetch_items(self, ids: List[str]) -> List[Dict[str, Any]]:
        """Execute the request with circuit breaker + retry."""
        url = f"{self.base_url}{self.path}"
        request = retry_on_exception((httpx.TransportError,), config=self.retry_config)(self._request)

        try:
            return await self.circuit_breaker.call(request, url, ids)
        except RemoteFetchError:
            raise
        except Exception as exc:
            self.logger.error("Remote source error", url=url, error=str(exc), count=len(ids))
            raise RemoteFetchError(self.source, str(exc), details={"url": url}) from exc

    async def _request(self, url: str, ids: List[str]) -> List[Dict[str, Any]]:
        params = [("ids", i) for i in ids]
        if self.client is not None:
            response = await self.client.get(url, params=params, timeout=self.timeout)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(url, params=params)

        if response.status_code == 404:
            self.logger.info("Remote entities not found", url=url, count=len(ids))
            return []

        if response.status_code != 200:
            self.logger.error(
                "Remote fetch request failed",
                url=url,
                status_code=response.status_code,
                response=response.text
            )
            raise RemoteFetchError(
                self.source,
                f"Unexpected status {response.status_code}",
                details={"status_code": response.status_code, "body": response.text}
            )

        data = response.json()
        if isinstance(data, dict):
            data = data.get("items", [])
        if not isinstance(data, list):
            raise RemoteFetchError(self.source, "Response is not a list of entities", details={"url": url})

        self.logger.debug("Remote entities retrieved", url=url, requested=len(ids), returned=len(data))
        return data
