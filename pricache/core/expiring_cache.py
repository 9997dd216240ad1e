"""
TTL-wrapped reads and writes over a storage backend.

Each entry is stored as ``{"data": <json>, "expiration": <epoch-ms> | null}``.
Expiry is lazy: an expired entry is deleted the first time a read observes
it. Storage faults never propagate; they are logged and treated as a miss.
"""

from __future__ import annotations

from typing import Any

from loguru import logger

from .cache_models import CacheLookup
from .clock import MS_PER_MINUTE, Clock, TimestampMs
from .errors import CacheError
from .persistence.backend import StorageBackend
from .serialization import JsonSerializer

cache_log = logger

DATA_FIELD = "data"
EXPIRATION_FIELD = "expiration"


def expiration_for(now: TimestampMs, ttl_minutes: float | None) -> TimestampMs | None:
    if ttl_minutes is None:
        return None
    return now + int(ttl_minutes * MS_PER_MINUTE)


def is_entry_record(record: Any) -> bool:
    return (
        isinstance(record, dict)
        and DATA_FIELD in record
        and EXPIRATION_FIELD in record
    )


class ExpiringCache:
    """Plain TTL cache; the bottom layer of the engine."""

    def __init__(
        self,
        storage: StorageBackend,
        clock: Clock,
        serializer: JsonSerializer | None = None,
        reserved_keys: frozenset[str] = frozenset(),
    ) -> None:
        self.storage = storage
        self.clock = clock
        self.serializer = serializer or JsonSerializer()
        # Keys owned by other layers sharing the backend (e.g. the registry)
        self.reserved_keys = reserved_keys

    def set(self, key: str, value: Any, ttl_minutes: float | None) -> bool:
        """Write ``value`` under ``key``; returns False if the write failed."""
        try:
            record = {
                DATA_FIELD: value,
                EXPIRATION_FIELD: expiration_for(self.clock.now(), ttl_minutes),
            }
            self.storage.set(key, self.serializer.dumps(record))
            return True
        except Exception as e:
            cache_log.error(f"Failed to set cache entry {key}: {e}")
            return False

    def lookup(self, key: str) -> CacheLookup:
        """Read ``key``, deleting it if expired."""
        try:
            raw = self.storage.get(key)
            if raw is None:
                return CacheLookup.miss()

            record = self.serializer.deserialize(raw)
            if not is_entry_record(record):
                raise CacheError(f"Corrupted cache record for {key}")

            expiration = record[EXPIRATION_FIELD]
            if expiration is not None and self.clock.now() > expiration:
                self.storage.delete(key)
                cache_log.debug(f"Cache entry {key} expired")
                return CacheLookup.expired_with(record[DATA_FIELD])

            return CacheLookup.found(record[DATA_FIELD])
        except Exception as e:
            cache_log.error(f"Failed to get cache entry {key}: {e}")
            return CacheLookup.miss()

    def get(self, key: str) -> Any | None:
        """Return the cached value or None."""
        return self.lookup(key).value

    def delete(self, key: str) -> None:
        try:
            self.storage.delete(key)
        except Exception as e:
            cache_log.error(f"Failed to clear cache entry {key}: {e}")

    def clear(self) -> None:
        try:
            self.storage.clear()
        except Exception as e:
            cache_log.error(f"Failed to clear all cache entries: {e}")

    def purge_expired(self) -> int:
        """Delete every expired entry in the backend; returns the count.

        Records that don't look like cache entries are skipped.
        """
        purged = 0
        try:
            now = self.clock.now()
            for key in self.storage.keys():
                if key in self.reserved_keys:
                    continue
                raw = self.storage.get(key)
                if raw is None:
                    continue
                try:
                    record = self.serializer.deserialize(raw)
                except CacheError:
                    continue
                if not is_entry_record(record):
                    continue
                expiration = record[EXPIRATION_FIELD]
                if expiration is not None and now > expiration:
                    self.storage.delete(key)
                    purged += 1
        except Exception as e:
            cache_log.error(f"Failed to purge expired cache entries: {e}")

        if purged:
            cache_log.debug(f"Purged {purged} expired cache entries")
        return purged
