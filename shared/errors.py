"""
Shared error handling for the offline cache layer.
"""

from typing import Dict, Any, Optional


class OfflineCacheException(Exception):
    """Base exception for the offline cache layer."""

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ValidationError(OfflineCacheException):
    """Validation-related errors."""

    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class StorageError(OfflineCacheException):
    """Local storage operation errors."""

    def __init__(self, partition: str, message: str = "Storage error", details: Optional[Dict[str, Any]] = None):
        super().__init__("STORAGE_ERROR", f"{partition}: {message}", details)
        self.partition = partition


class StorageUnavailableError(StorageError):
    """Storage connection or partition creation errors."""

    def __init__(self, partition: str, message: str = "Storage unavailable", details: Optional[Dict[str, Any]] = None):
        super().__init__(partition, message, details)
        self.code = "STORAGE_UNAVAILABLE"


class RemoteFetchError(OfflineCacheException):
    """Remote source errors."""

    def __init__(self, source: str, message: str = "Remote fetch failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("REMOTE_FETCH_ERROR", f"{source}: {message}", details)
        self.source = source
