"""
Connectivity package.

Tracks whether the remote source is reachable right now. Consumers only ever
sample the latest known value.
"""

from .monitor import ConnectivityMonitor
from .probes import HttpReachabilityProbe

__all__ = [
    "ConnectivityMonitor",
    "HttpReachabilityProbe",
]
