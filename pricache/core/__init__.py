"""
pricache core module

Storage, expiry, metadata, eviction, fetch orchestration and maintenance
layers, plus the ``CacheEngine`` facade that wires them together.
"""

from .cache_models import (
    CacheLookup,
    CacheMetadata,
    CachePolicy,
    FetchPolicy,
    PriorityClass,
)
from .clock import Clock, ManualClock, SystemClock
from .config import CacheEngineSettings
from .engine import CacheEngine
from .errors import (
    CacheError,
    FetchError,
    FetchTimeoutError,
    HTTPStatusError,
    SerializationError,
    StorageError,
    StorageQuotaExceededError,
)
from .fetch import RevalidationOutcome
from .maintenance import MaintenanceReport
from .network import AiohttpFetcher, BufferedResponse, Fetcher
from .persistence import MemoryStorageBackend, SQLiteStorageBackend, StorageBackend
from .statistics import CacheStatsSnapshot

__all__ = [
    "AiohttpFetcher",
    "BufferedResponse",
    "CacheEngine",
    "CacheEngineSettings",
    "CacheError",
    "CacheLookup",
    "CacheMetadata",
    "CachePolicy",
    "CacheStatsSnapshot",
    "Clock",
    "FetchError",
    "FetchPolicy",
    "FetchTimeoutError",
    "Fetcher",
    "HTTPStatusError",
    "MaintenanceReport",
    "ManualClock",
    "MemoryStorageBackend",
    "PriorityClass",
    "RevalidationOutcome",
    "SQLiteStorageBackend",
    "SerializationError",
    "StorageBackend",
    "StorageError",
    "StorageQuotaExceededError",
    "SystemClock",
]
