"""
Storage package for the offline cache.

Backends own the shared connection and hand out one partition per entity
kind. Every partition stores rows of (id, ttl, element).
"""

from .base import StorageBackend, StoragePartition
from .factory import create_storage_backend
from .memory import MemoryStorageBackend

__all__ = [
    "StorageBackend",
    "StoragePartition",
    "MemoryStorageBackend",
    "create_storage_backend",
]
