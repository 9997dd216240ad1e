"""
Capacity management for the priority cache.

Before a write, ``ensure_space`` evicts entries until the incoming value fits
under the byte budget (and the optional entry-count limit). Candidates are
every non-CRITICAL entry ordered by priority, then by least recent access.
Eviction is best-effort: when the candidates run out the write still goes
ahead and the engine temporarily exceeds its soft limit.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from loguru import logger

from .cache_models import CacheMetadata, PriorityClass
from .expiring_cache import ExpiringCache
from .registry import MetadataRegistry
from .statistics import CacheStatistics, format_size

eviction_log = logger


@dataclass(slots=True)
class CacheLimits:
    """Capacity limits for one engine."""

    limit_bytes: int
    max_entries: int | None = None

    def __post_init__(self) -> None:
        if self.limit_bytes <= 0:
            raise ValueError(f"limit_bytes must be positive, got {self.limit_bytes}")
        if self.max_entries is not None and self.max_entries <= 0:
            raise ValueError(f"max_entries must be positive, got {self.max_entries}")

    def fits(self, usage_bytes: int, required_bytes: int, entry_count: int) -> bool:
        if usage_bytes + required_bytes >= self.limit_bytes:
            return False
        if self.max_entries is not None and entry_count >= self.max_entries:
            return False
        return True


@dataclass(slots=True)
class EvictionCandidate:
    """Candidate for cache eviction, ordered by (priority, last access)."""

    metadata: CacheMetadata

    @property
    def sort_key(self) -> tuple[int, int]:
        return (self.metadata.priority.rank, self.metadata.last_access_at)

    def __lt__(self, other: EvictionCandidate) -> bool:
        """Lower priority, then older access, is evicted first."""
        return self.sort_key < other.sort_key


@dataclass(slots=True)
class EvictionReport:
    """Outcome of one ``ensure_space`` call."""

    required_bytes: int
    evicted_keys: list[str] = field(default_factory=list)
    freed_bytes: int = 0
    satisfied: bool = True

    @property
    def evicted_count(self) -> int:
        return len(self.evicted_keys)


class CapacityManager:
    def __init__(
        self,
        registry: MetadataRegistry,
        expiring_cache: ExpiringCache,
        statistics: CacheStatistics,
        limits: CacheLimits,
    ) -> None:
        self.registry = registry
        self.expiring_cache = expiring_cache
        self.statistics = statistics
        self.limits = limits

    def has_room_for(self, required_bytes: int) -> bool:
        return self.limits.fits(
            self.statistics.usage_bytes, required_bytes, len(self.registry)
        )

    def select_candidates(self) -> list[EvictionCandidate]:
        """All evictable entries, most evictable first. CRITICAL is excluded."""
        candidates = [
            EvictionCandidate(metadata)
            for metadata in self.registry
            if metadata.priority is not PriorityClass.CRITICAL
        ]
        candidates.sort()
        return candidates

    def ensure_space(self, required_bytes: int) -> EvictionReport:
        """Evict until ``required_bytes`` fits. Always lets the write proceed."""
        report = EvictionReport(required_bytes=required_bytes)
        if self.has_room_for(required_bytes):
            return report

        eviction_log.info(
            f"Cache space low, evicting: {format_size(self.statistics.usage_bytes)}"
            f" / {format_size(self.limits.limit_bytes)},"
            f" need {format_size(required_bytes)}"
        )

        for candidate in self.select_candidates():
            key = candidate.metadata.key
            self.expiring_cache.delete(key)
            removed = self.registry.remove(key)
            if removed is None:
                continue
            report.evicted_keys.append(key)
            report.freed_bytes += removed.size_bytes
            self.statistics.record_eviction()
            eviction_log.debug(
                f"Evicted {key} ({removed.priority.value}, {removed.size_bytes} bytes)"
            )
            if self.has_room_for(required_bytes):
                break

        report.satisfied = self.has_room_for(required_bytes)
        if report.satisfied:
            eviction_log.info(
                f"Eviction freed {format_size(report.freed_bytes)}"
                f" across {report.evicted_count} entries"
            )
        else:
            eviction_log.warning(
                f"Eviction could not free enough space"
                f" for {format_size(required_bytes)};"
                f" proceeding over the soft limit"
                f" ({format_size(self.statistics.usage_bytes)} in use)"
            )
        return report
