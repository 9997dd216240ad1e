"""
Periodic cache maintenance.

Each pass sweeps every registered key through the lazy-expiry path, sheds
low-priority entries when usage crosses the high-water mark, purges expired
plain TTL entries, and logs a summary. Skipping maintenance never affects
correctness, only how quickly expired bytes are reclaimed.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

from loguru import logger
from pympler import asizeof

from .cache_models import PriorityClass
from .priority_cache import PriorityCache
from .statistics import CacheStatistics, CacheStatsSnapshot, format_size
from .task_manager import ManagedObject, TaskManager

maintenance_log = logger

DEFAULT_MAINTENANCE_INTERVAL_SECONDS = 30 * 60
DEFAULT_HIGH_WATER_RATIO = 0.75


@dataclass(frozen=True, slots=True)
class MaintenanceReport:
    """What one maintenance pass did."""

    expired_entries: int
    shed_entries: int
    purged_plain_entries: int
    registry_footprint_bytes: int
    stats: CacheStatsSnapshot

    def summary(self) -> str:
        return (
            f"Cache maintenance complete: {self.stats.summary()};"
            f" expired {self.expired_entries}, shed {self.shed_entries},"
            f" purged {self.purged_plain_entries};"
            f" registry memory {format_size(self.registry_footprint_bytes)}"
        )


class MaintenanceScheduler(ManagedObject):
    def __init__(
        self,
        priority_cache: PriorityCache,
        statistics: CacheStatistics,
        *,
        interval_seconds: float = DEFAULT_MAINTENANCE_INTERVAL_SECONDS,
        high_water_ratio: float = DEFAULT_HIGH_WATER_RATIO,
        shed_threshold: PriorityClass = PriorityClass.MEDIUM,
    ) -> None:
        super().__init__(name="MaintenanceScheduler")
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.priority_cache = priority_cache
        self.statistics = statistics
        self.interval_seconds = interval_seconds
        self.high_water_ratio = high_water_ratio
        self.shed_threshold = shed_threshold
        self.passes_completed = 0
        self._loop_task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    def start(self) -> None:
        """Start the periodic loop on the running event loop."""
        if self.running:
            return
        self._loop_task = self.create_task(
            self._periodic_maintenance(), name="periodic_maintenance"
        )

    async def stop(self) -> None:
        await self.shutdown()
        self._loop_task = None
        # Fresh manager so the scheduler can be started again
        self._task_manager = TaskManager(self._task_manager.name)

    def above_high_water(self) -> bool:
        return (
            self.statistics.usage_bytes
            > self.high_water_ratio * self.statistics.limit_bytes
        )

    def run_once(self) -> MaintenanceReport:
        """Run a single maintenance pass synchronously."""
        expired = 0
        for key in self.priority_cache.registry.keys():
            if self.priority_cache.expire_if_stale(key):
                expired += 1

        shed = 0
        if self.above_high_water():
            maintenance_log.info(
                f"Cache usage {format_size(self.statistics.usage_bytes)} above"
                f" {self.high_water_ratio:.0%} of limit, clearing entries below"
                f" {self.shed_threshold.value}"
            )
            shed = self.priority_cache.clear_below_priority(self.shed_threshold)

        purged = self.priority_cache.expiring_cache.purge_expired()

        report = MaintenanceReport(
            expired_entries=expired,
            shed_entries=shed,
            purged_plain_entries=purged,
            registry_footprint_bytes=asizeof.asizeof(
                self.priority_cache.registry.values()
            ),
            stats=self.statistics.snapshot(len(self.priority_cache.registry)),
        )
        self.passes_completed += 1
        maintenance_log.info(report.summary())
        return report

    async def _periodic_maintenance(self) -> None:
        try:
            while True:
                await asyncio.sleep(self.interval_seconds)
                try:
                    self.run_once()
                except Exception as e:
                    maintenance_log.error(f"Cache maintenance pass failed: {e}")
        except asyncio.CancelledError:
            maintenance_log.debug("Cache maintenance task cancelled")
            raise
        finally:
            maintenance_log.debug("Cache maintenance task stopped")
