"""Exception hierarchy for pricache.

Storage faults never escape the cache layers; they exist so backends can
signal precise conditions that the layers catch, log, and degrade on.
Fetch errors are the only ones application code is expected to handle.
"""

from __future__ import annotations


class CacheError(Exception):
    """Base exception for cache-related errors."""

    pass


class StorageError(CacheError):
    """Raised by a storage backend when a read or write fails."""

    pass


class StorageQuotaExceededError(StorageError):
    """Raised when a write would exceed the backend's byte quota."""

    pass


class SerializationError(CacheError):
    """Raised when a value cannot be encoded to or decoded from JSON."""

    pass


class FetchError(CacheError):
    """Raised when a network fetch fails."""

    def __init__(self, url: str, message: str) -> None:
        super().__init__(f"{message} ({url})")
        self.url = url


class FetchTimeoutError(FetchError):
    """Raised when a network fetch exceeds its timeout."""

    def __init__(self, url: str, timeout_seconds: float) -> None:
        super().__init__(url, f"Request timed out after {timeout_seconds}s")
        self.timeout_seconds = timeout_seconds


class HTTPStatusError(FetchError):
    """Raised when a response carries a non-success status code."""

    def __init__(self, url: str, status: int) -> None:
        super().__init__(url, f"HTTP error, status {status}")
        self.status = status
