"""
Per-key metadata registry for the priority cache.

The registry owns one ``CacheMetadata`` per live key and keeps the engine's
``usage_bytes`` equal to the sum of their sizes. It is persisted as a JSON
array of ``[key, metadata]`` pairs under a single storage key, loaded on
construction and rewritten after every mutation.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any

from loguru import logger

from .cache_models import CacheMetadata
from .persistence.backend import StorageBackend
from .serialization import JsonSerializer
from .statistics import CacheStatistics

registry_log = logger

DEFAULT_REGISTRY_KEY = "__pricache_registry__"


class MetadataRegistry:
    def __init__(
        self,
        storage: StorageBackend,
        statistics: CacheStatistics,
        *,
        serializer: JsonSerializer | None = None,
        storage_key: str = DEFAULT_REGISTRY_KEY,
        persist: bool = True,
    ) -> None:
        self.storage = storage
        self.statistics = statistics
        self.serializer = serializer or JsonSerializer()
        self.storage_key = storage_key
        self.persist = persist
        self._entries: dict[str, CacheMetadata] = {}
        if persist:
            self.load()

    def get(self, key: str) -> CacheMetadata | None:
        return self._entries.get(key)

    def upsert(self, metadata: CacheMetadata) -> None:
        """Insert or replace metadata, keeping usage accounting exact."""
        previous = self._entries.get(metadata.key)
        if previous is not None:
            self.statistics.release_usage(previous.size_bytes)
        self._entries[metadata.key] = metadata
        self.statistics.add_usage(metadata.size_bytes)
        self.save()

    def record_access(self, metadata: CacheMetadata, now: int) -> None:
        """Update access bookkeeping for an existing entry and persist it."""
        metadata.record_access(now)
        self.save()

    def remove(self, key: str) -> CacheMetadata | None:
        metadata = self._entries.pop(key, None)
        if metadata is None:
            return None
        self.statistics.release_usage(metadata.size_bytes)
        self.save()
        return metadata

    def clear(self) -> None:
        self._entries.clear()
        self.statistics.usage_bytes = 0
        self.save()

    def keys(self) -> list[str]:
        return list(self._entries)

    def values(self) -> list[CacheMetadata]:
        return list(self._entries.values())

    def total_size(self) -> int:
        return sum(metadata.size_bytes for metadata in self._entries.values())

    def recalculate_usage(self) -> int:
        """Reset ``usage_bytes`` from the registry contents."""
        self.statistics.usage_bytes = self.total_size()
        return self.statistics.usage_bytes

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __iter__(self) -> Iterator[CacheMetadata]:
        return iter(list(self._entries.values()))

    def load(self) -> int:
        """Load persisted metadata; a corrupt record yields an empty registry."""
        self._entries = {}
        try:
            raw = self.storage.get(self.storage_key)
            if raw is not None:
                pairs: Any = self.serializer.deserialize(raw)
                if not isinstance(pairs, list):
                    raise ValueError("registry record is not a list")
                for key, data in pairs:
                    self._entries[key] = CacheMetadata.from_dict(key, data)
        except Exception as e:
            registry_log.error(f"Failed to load cache registry: {e}")
            self._entries = {}

        self.recalculate_usage()
        if self._entries:
            registry_log.info(
                f"Loaded cache registry with {len(self._entries)} entries"
            )
        return len(self._entries)

    def save(self) -> None:
        if not self.persist:
            return
        try:
            pairs = [
                [key, metadata.to_dict()] for key, metadata in self._entries.items()
            ]
            self.storage.set(self.storage_key, self.serializer.dumps(pairs))
        except Exception as e:
            registry_log.error(f"Failed to save cache registry: {e}")
