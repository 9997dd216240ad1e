"""
pricache - priority-aware caching engine

A bounded, byte-accounted key/value cache with TTL expiry, tag and priority
invalidation, eviction under capacity pressure, and a fetch orchestrator with
stale-while-revalidate and degrade-to-stale-on-failure semantics.

## Quick Start

```python
from pricache import CacheEngine, CacheEngineSettings, CachePolicy, PriorityClass

engine = CacheEngine(CacheEngineSettings(limit_bytes=2 * 1024 * 1024))
engine.set_priority_cache(
    "quotes", {"AAPL": 189.2}, CachePolicy(priority=PriorityClass.HIGH, tags={"market"})
)
engine.get_priority_cache("quotes")
engine.clear_cache_by_tags(["market"])
```
"""

from .core import (
    CacheEngine,
    CacheEngineSettings,
    CacheError,
    CachePolicy,
    CacheStatsSnapshot,
    FetchError,
    FetchPolicy,
    FetchTimeoutError,
    HTTPStatusError,
    ManualClock,
    MemoryStorageBackend,
    PriorityClass,
    SQLiteStorageBackend,
    SystemClock,
)

__version__ = "0.1.0"

__all__ = [
    "CacheEngine",
    "CacheEngineSettings",
    "CacheError",
    "CachePolicy",
    "CacheStatsSnapshot",
    "FetchError",
    "FetchPolicy",
    "FetchTimeoutError",
    "HTTPStatusError",
    "ManualClock",
    "MemoryStorageBackend",
    "PriorityClass",
    "SQLiteStorageBackend",
    "SystemClock",
]
