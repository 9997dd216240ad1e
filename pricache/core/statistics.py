"""Hit, miss, eviction and usage counters for a cache engine."""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from typing import Any

_SIZE_UNITS = ("Bytes", "KB", "MB", "GB")


def format_size(size_bytes: int | float) -> str:
    """Human-readable byte count, e.g. ``1536 -> '1.5 KB'``."""
    if size_bytes <= 0:
        return "0 Bytes"
    exponent = min(int(math.log(size_bytes, 1024)), len(_SIZE_UNITS) - 1)
    scaled = round(size_bytes / 1024**exponent, 2)
    return f"{scaled:g} {_SIZE_UNITS[exponent]}"


@dataclass(slots=True)
class CacheStatistics:
    """Mutable counters owned by one engine."""

    limit_bytes: int
    usage_bytes: int = 0
    hits: int = 0
    misses: int = 0
    evictions: int = 0

    def record_hit(self) -> None:
        self.hits += 1

    def record_miss(self) -> None:
        self.misses += 1

    def record_eviction(self) -> None:
        self.evictions += 1

    def add_usage(self, size_bytes: int) -> None:
        self.usage_bytes += size_bytes

    def release_usage(self, size_bytes: int) -> None:
        self.usage_bytes = max(0, self.usage_bytes - size_bytes)

    def hit_rate(self) -> float:
        """Calculate cache hit rate."""
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0

    def usage_percent(self) -> float:
        if self.limit_bytes <= 0:
            return 0.0
        return self.usage_bytes / self.limit_bytes * 100

    def reset(self) -> None:
        """Reset hit/miss/eviction counters; usage is left alone."""
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    def snapshot(self, entry_count: int) -> CacheStatsSnapshot:
        return CacheStatsSnapshot(
            usage_bytes=self.usage_bytes,
            limit_bytes=self.limit_bytes,
            usage_percent=self.usage_percent(),
            hits=self.hits,
            misses=self.misses,
            evictions=self.evictions,
            entry_count=entry_count,
            hit_rate=self.hit_rate(),
        )


@dataclass(frozen=True, slots=True)
class CacheStatsSnapshot:
    """Point-in-time view returned by ``get_cache_stats``."""

    usage_bytes: int
    limit_bytes: int
    usage_percent: float
    hits: int
    misses: int
    evictions: int
    entry_count: int
    hit_rate: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def summary(self) -> str:
        return (
            f"{self.entry_count} entries, {format_size(self.usage_bytes)} of "
            f"{format_size(self.limit_bytes)} ({self.usage_percent:.1f}%), "
            f"hit rate {self.hit_rate:.1%}"
        )
