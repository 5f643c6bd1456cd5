"""
Adapters package for the offline cache.

Contains HTTP wrappers for the remote source. These adapters encapsulate:

- Base URLs and request shapes
- Retry policies and circuit breakers
- Error handling that maps to shared errors

Keep adapters thin and side-effect free outside of explicit calls.
"""

from .remote_fetcher import HttpRemoteFetcher, empty_fetcher

__all__ = [
    "HttpRemoteFetcher",
    "empty_fetcher",
]
