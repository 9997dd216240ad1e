"""
The cache engine: one explicit value wiring every layer together.

    engine = CacheEngine(CacheEngineSettings(limit_bytes=1_000_000))
    engine.set_priority_cache("quotes", data, CachePolicy(priority="high"))
    quotes = engine.get_priority_cache("quotes")
    market = await engine.fetch_with_priority_cache(
        "https://api.example.com/market", cache_options={"ttl_minutes": 1}
    )

Independent engines share nothing, so tests and separate caches can run side
by side. All cache operations are synchronous; only network fetches and the
background maintenance/refresh tasks suspend.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any, Self, TypeAlias

from loguru import logger

from .cache_models import CachePolicy, FetchPolicy, PriorityClass
from .clock import Clock, SystemClock
from .config import CacheEngineSettings
from .eviction import CacheLimits, CapacityManager
from .expiring_cache import ExpiringCache
from .fetch import FetchOrchestrator, FetchStrategy, RevalidationListener
from .maintenance import MaintenanceReport, MaintenanceScheduler
from .network import AiohttpFetcher, Fetcher, FetchOptions
from .persistence.backend import (
    MemoryStorageBackend,
    SQLiteStorageBackend,
    StorageBackend,
)
from .priority_cache import PriorityCache
from .registry import MetadataRegistry
from .serialization import JsonSerializer
from .statistics import CacheStatistics, CacheStatsSnapshot

engine_log = logger

CacheOptions: TypeAlias = CachePolicy | Mapping[str, Any] | None
FetchCacheOptions: TypeAlias = FetchPolicy | Mapping[str, Any] | None

# Alternate option names accepted in mapping-style options
_OPTION_ALIASES = {
    "expiration_minutes": "ttl_minutes",
    "cache_minutes": "ttl_minutes",
}


def _normalize_options(options: Mapping[str, Any]) -> dict[str, Any]:
    return {_OPTION_ALIASES.get(k, k): v for k, v in options.items()}


def build_storage(settings: CacheEngineSettings) -> StorageBackend:
    """Storage backend implied by settings: SQLite if a path is set, else memory."""
    if settings.sqlite_path is not None:
        storage = SQLiteStorageBackend(db_path=settings.sqlite_path)
        storage.open()
        return storage
    return MemoryStorageBackend()


class CacheEngine:
    """Priority-aware cache with TTL expiry, eviction and fetch orchestration."""

    def __init__(
        self,
        settings: CacheEngineSettings | None = None,
        *,
        storage: StorageBackend | None = None,
        clock: Clock | None = None,
        fetcher: Fetcher | None = None,
    ) -> None:
        self.settings = settings or CacheEngineSettings()
        self._owns_storage = storage is None
        self.storage = storage if storage is not None else build_storage(self.settings)
        self.clock = clock or SystemClock()
        self.fetcher = fetcher if fetcher is not None else AiohttpFetcher()
        self.serializer = JsonSerializer()

        self.statistics = CacheStatistics(limit_bytes=self.settings.limit_bytes)
        self.expiring_cache = ExpiringCache(
            self.storage,
            self.clock,
            self.serializer,
            reserved_keys=frozenset({self.settings.registry_storage_key}),
        )
        self.registry = MetadataRegistry(
            self.storage,
            self.statistics,
            serializer=self.serializer,
            storage_key=self.settings.registry_storage_key,
            persist=self.settings.persist_registry,
        )
        self.capacity = CapacityManager(
            self.registry,
            self.expiring_cache,
            self.statistics,
            CacheLimits(
                limit_bytes=self.settings.limit_bytes,
                max_entries=self.settings.max_entries,
            ),
        )
        self.priority_cache = PriorityCache(
            self.expiring_cache,
            self.registry,
            self.capacity,
            self.statistics,
            self.clock,
            self.serializer,
        )
        self.orchestrator = FetchOrchestrator(
            self.priority_cache,
            self.fetcher,
            default_policy=self.settings.default_fetch_policy(),
            default_timeout_seconds=self.settings.fetch_timeout_seconds,
            coalesce_requests=self.settings.coalesce_requests,
            bypass_patterns=self.settings.bypass_patterns,
        )
        self.maintenance = MaintenanceScheduler(
            self.priority_cache,
            self.statistics,
            interval_seconds=self.settings.maintenance_interval_seconds,
            high_water_ratio=self.settings.high_water_ratio,
            shed_threshold=self.settings.maintenance_threshold,
        )
        engine_log.debug(
            f"Cache engine ready: limit {self.settings.limit_bytes} bytes,"
            f" {len(self.registry)} registered entries"
        )

    # Lifecycle

    async def start(self) -> None:
        """Start periodic maintenance."""
        self.maintenance.start()

    async def shutdown(self) -> None:
        """Stop background work and persist the registry."""
        await self.maintenance.stop()
        await self.orchestrator.shutdown()
        self.registry.save()
        if isinstance(self.fetcher, AiohttpFetcher):
            await self.fetcher.close()
        if self._owns_storage and isinstance(self.storage, SQLiteStorageBackend):
            self.storage.close()
        engine_log.info("Cache engine shutdown complete")

    async def __aenter__(self) -> Self:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.shutdown()

    # Plain TTL cache

    def set_cache(self, key: str, data: Any, ttl_minutes: float | None = None) -> bool:
        if ttl_minutes is None:
            ttl_minutes = self.settings.default_ttl_minutes
        return self.expiring_cache.set(key, data, ttl_minutes)

    def get_cache(self, key: str) -> Any | None:
        return self.expiring_cache.get(key)

    def clear_cache(self, key: str) -> None:
        self.expiring_cache.delete(key)

    def clear_all_cache(self) -> None:
        """Wipe the storage backend, including every priority entry."""
        self.expiring_cache.clear()
        self.priority_cache.clear()
        engine_log.info("Cache cleared")

    # Priority cache

    def _cache_policy(self, options: CacheOptions) -> CachePolicy:
        if isinstance(options, CachePolicy):
            return options
        fields = _normalize_options(options or {})
        fields.setdefault("ttl_minutes", self.settings.default_ttl_minutes)
        return CachePolicy(**fields)

    def _fetch_policy(self, options: FetchCacheOptions) -> FetchPolicy | None:
        if options is None or isinstance(options, FetchPolicy):
            return options
        fields = _normalize_options(options)
        fields.setdefault("ttl_minutes", self.settings.fetch_ttl_minutes)
        return FetchPolicy(**fields)

    def set_priority_cache(
        self, key: str, data: Any, options: CacheOptions = None
    ) -> bool:
        return self.priority_cache.set(key, data, self._cache_policy(options))

    def get_priority_cache(self, key: str) -> Any | None:
        return self.priority_cache.get(key)

    def delete_priority_cache(self, key: str) -> bool:
        return self.priority_cache.delete(key)

    def clear_cache_by_tags(self, tags: str | Iterable[str]) -> int:
        return self.priority_cache.clear_by_tags(tags)

    def clear_cache_below_priority(self, priority: PriorityClass | str) -> int:
        return self.priority_cache.clear_below_priority(priority)

    # Fetching

    async def fetch_with_priority_cache(
        self,
        url: str,
        fetch_options: FetchOptions | None = None,
        cache_options: FetchCacheOptions = None,
    ) -> Any:
        return await self.orchestrator.fetch_with_policy(
            url, fetch_options, self._fetch_policy(cache_options)
        )

    def register_strategy(self, url_pattern: str, options: FetchCacheOptions) -> None:
        policy = self._fetch_policy(options) or self.settings.default_fetch_policy()
        self.orchestrator.register_strategy(url_pattern, policy)

    def strategies(self) -> list[FetchStrategy]:
        return self.orchestrator.strategies()

    def add_revalidation_listener(self, listener: RevalidationListener) -> None:
        self.orchestrator.add_revalidation_listener(listener)

    async def wait_for_revalidations(self, timeout: float | None = None) -> bool:
        return await self.orchestrator.wait_for_revalidations(timeout)

    # Maintenance and stats

    def run_maintenance(self) -> MaintenanceReport:
        return self.maintenance.run_once()

    def get_cache_stats(self) -> CacheStatsSnapshot:
        return self.statistics.snapshot(len(self.registry))

    def reset_stats(self) -> None:
        self.statistics.reset()
