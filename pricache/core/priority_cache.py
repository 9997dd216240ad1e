"""
Priority-aware cache: the expiring cache plus per-key metadata.

Writes reserve space through the capacity manager before touching storage,
reads keep access bookkeeping current, and entries can be invalidated in bulk
by tag or by priority threshold.
"""

from __future__ import annotations

import itertools
from collections.abc import Iterable
from typing import Any

from loguru import logger

from .cache_models import (
    CacheLookup,
    CacheMetadata,
    CachePolicy,
    PriorityClass,
    normalize_tags,
)
from .clock import Clock
from .eviction import CapacityManager
from .expiring_cache import ExpiringCache
from .registry import MetadataRegistry
from .serialization import JsonSerializer
from .statistics import CacheStatistics

cache_log = logger

# Fallback size when a value can't be measured
DEFAULT_SIZE_ESTIMATE = 1024


class PriorityCache:
    def __init__(
        self,
        expiring_cache: ExpiringCache,
        registry: MetadataRegistry,
        capacity: CapacityManager,
        statistics: CacheStatistics,
        clock: Clock,
        serializer: JsonSerializer | None = None,
    ) -> None:
        self.expiring_cache = expiring_cache
        self.registry = registry
        self.capacity = capacity
        self.statistics = statistics
        self.clock = clock
        self.serializer = serializer or JsonSerializer()
        # Shared by every key and never reset, so a stamp is never reused
        self._write_stamps = itertools.count(1)

    def generation(self, key: str) -> int | None:
        """Write stamp of the live entry for ``key``, or None if unregistered."""
        metadata = self.registry.get(key)
        return None if metadata is None else metadata.generation

    def measure(self, value: Any) -> int:
        try:
            return self.serializer.measure(value)
        except Exception as e:
            cache_log.error(f"Failed to calculate data size: {e}")
            return DEFAULT_SIZE_ESTIMATE

    def set(self, key: str, value: Any, policy: CachePolicy) -> bool:
        """Store ``value`` under ``policy``; returns False if nothing was stored."""
        size_bytes = self.measure(value)

        # An overwrite must not count the old value against the new one, and a
        # failed write must not leave the old value readable
        if key in self.registry:
            self.registry.remove(key)
            self.expiring_cache.delete(key)

        self.capacity.ensure_space(size_bytes)

        if not self.expiring_cache.set(key, value, policy.ttl_minutes):
            cache_log.error(f"Failed to set priority cache entry {key}")
            return False

        now = self.clock.now()
        self.registry.upsert(
            CacheMetadata(
                key=key,
                priority=policy.priority,
                size_bytes=size_bytes,
                tags=policy.tags,
                created_at=now,
                last_access_at=now,
                hit_count=0,
                stale_while_revalidate=policy.stale_while_revalidate,
                generation=next(self._write_stamps),
            )
        )
        cache_log.debug(
            f"Cached {key} ({policy.priority.value}, {size_bytes} bytes,"
            f" ttl {policy.ttl_minutes} min)"
        )
        return True

    def lookup(self, key: str) -> CacheLookup:
        """Read ``key``, recording exactly one hit or miss."""
        metadata = self.registry.get(key)
        if metadata is None:
            self.statistics.record_miss()
            return CacheLookup.miss()

        result = self.expiring_cache.lookup(key)
        if not result.hit:
            self.registry.remove(key)
            self.statistics.record_miss()
            return result

        self.registry.record_access(metadata, self.clock.now())
        self.statistics.record_hit()
        return result

    def get(self, key: str) -> Any | None:
        return self.lookup(key).value

    def expire_if_stale(self, key: str) -> bool:
        """Run the lazy-expiry path for ``key`` without touching access stats.

        Returns True if the entry was dropped from the registry.
        """
        if key not in self.registry:
            return False
        if self.expiring_cache.lookup(key).hit:
            return False
        self.registry.remove(key)
        return True

    def delete(self, key: str) -> bool:
        self.expiring_cache.delete(key)
        return self.registry.remove(key) is not None

    def clear_by_tags(self, tags: str | Iterable[str]) -> int:
        """Remove every entry carrying any of ``tags``."""
        tag_set = normalize_tags(tags)
        matching = [m.key for m in self.registry if m.has_any_tag(tag_set)]
        for key in matching:
            self.delete(key)
        cache_log.info(
            f"Cleared {len(matching)} cache entries tagged {sorted(tag_set)}"
        )
        return len(matching)

    def clear_below_priority(self, threshold: PriorityClass | str) -> int:
        """Remove every entry whose priority is strictly below ``threshold``."""
        threshold = PriorityClass.parse(threshold)
        matching = [m.key for m in self.registry if m.priority < threshold]
        for key in matching:
            self.delete(key)
        cache_log.info(
            f"Cleared {len(matching)} cache entries below {threshold.value} priority"
        )
        return len(matching)

    def clear(self) -> None:
        self.registry.clear()
