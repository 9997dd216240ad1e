"""
Fetch-with-cache orchestration.

``fetch_with_policy`` decides per call between cache-first,
stale-while-revalidate and network-first behaviour:

- hit without SWR: return the cached value, no network call
- hit with SWR: return the cached value and refresh it in the background
- miss: fetch under a timeout and cache the result; if the fetch fails,
  degrade to any cached value for the key (expired ones included) or
  re-raise

Background refreshes are detached tasks. They never block a caller, their
failures are logged and reported to revalidation listeners only, and their
result is dropped if the key was rewritten while they were in flight.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any, TypeAlias

from loguru import logger

from .cache_models import CacheLookup, FetchPolicy
from .errors import FetchTimeoutError, HTTPStatusError
from .network import Fetcher, FetchOptions
from .priority_cache import PriorityCache
from .task_manager import ManagedObject

fetch_log = logger

DEFAULT_FETCH_TIMEOUT_SECONDS = 10.0


def derive_cache_key(url: str) -> str:
    """Default cache key for a URL: ``fetch_`` plus the URL with ``/`` -> ``_``."""
    return "fetch_" + url.replace("/", "_")


@dataclass(frozen=True, slots=True)
class RevalidationOutcome:
    """Reported to listeners when a background refresh finishes."""

    key: str
    url: str
    succeeded: bool
    stored: bool = False
    error: BaseException | None = None


RevalidationListener: TypeAlias = Callable[[RevalidationOutcome], None]


@dataclass(frozen=True, slots=True)
class FetchStrategy:
    """Default policy for URLs containing ``url_pattern``."""

    url_pattern: str
    policy: FetchPolicy

    def matches(self, url: str) -> bool:
        return self.url_pattern in url


class FetchOrchestrator(ManagedObject):
    def __init__(
        self,
        priority_cache: PriorityCache,
        fetcher: Fetcher,
        *,
        default_policy: FetchPolicy | None = None,
        default_timeout_seconds: float = DEFAULT_FETCH_TIMEOUT_SECONDS,
        coalesce_requests: bool = False,
        bypass_patterns: Iterable[str] = (),
    ) -> None:
        super().__init__(name="FetchOrchestrator")
        self.priority_cache = priority_cache
        self.fetcher = fetcher
        self.default_policy = default_policy or FetchPolicy()
        self.default_timeout_seconds = default_timeout_seconds
        self.coalesce_requests = coalesce_requests
        self.bypass_patterns = tuple(p for p in bypass_patterns if p)
        self._strategies: list[FetchStrategy] = []
        self._listeners: list[RevalidationListener] = []
        self._in_flight: dict[str, asyncio.Task[Any]] = {}

    # Policy resolution

    def register_strategy(self, url_pattern: str, policy: FetchPolicy) -> None:
        """Use ``policy`` for fetches whose URL contains ``url_pattern``."""
        self._strategies = [
            s for s in self._strategies if s.url_pattern != url_pattern
        ]
        self._strategies.append(FetchStrategy(url_pattern, policy))
        # Longest pattern wins
        self._strategies.sort(key=lambda s: len(s.url_pattern), reverse=True)
        fetch_log.debug(f"Registered fetch strategy for {url_pattern}")

    def strategies(self) -> list[FetchStrategy]:
        return list(self._strategies)

    def resolve_policy(
        self, url: str, policy: FetchPolicy | None = None
    ) -> FetchPolicy:
        if policy is not None:
            return policy
        for strategy in self._strategies:
            if strategy.matches(url):
                return strategy.policy
        return self.default_policy

    def should_bypass(self, url: str) -> bool:
        return any(pattern in url for pattern in self.bypass_patterns)

    # Listeners

    def add_revalidation_listener(self, listener: RevalidationListener) -> None:
        self._listeners.append(listener)

    def remove_revalidation_listener(self, listener: RevalidationListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, outcome: RevalidationOutcome) -> None:
        for listener in list(self._listeners):
            try:
                listener(outcome)
            except Exception as e:
                fetch_log.error(f"Revalidation listener failed: {e}")

    # Fetching

    @property
    def pending_revalidations(self) -> int:
        return len(self._task_manager)

    async def wait_for_revalidations(self, timeout: float | None = None) -> bool:
        """Wait for in-flight background refreshes; for tests and shutdown."""
        return await self._task_manager.wait_idle(timeout)

    async def fetch_with_policy(
        self,
        url: str,
        fetch_options: FetchOptions | None = None,
        policy: FetchPolicy | None = None,
    ) -> Any:
        options: FetchOptions = fetch_options or {}
        policy = self.resolve_policy(url, policy)

        if self.should_bypass(url):
            fetch_log.debug(f"Bypassing cache for {url}")
            return await self._fetch_network(url, options, policy)

        key = policy.cache_key or derive_cache_key(url)
        lookup = self.priority_cache.lookup(key)

        if lookup.hit:
            if policy.stale_while_revalidate:
                self._spawn_revalidation(key, url, options, policy)
            fetch_log.debug(f"Served {key} from cache")
            return lookup.value

        try:
            if self.coalesce_requests:
                return await self._load_coalesced(key, url, options, policy)
            return await self._load(key, url, options, policy)
        except Exception as e:
            return self._fallback(key, url, lookup, e)

    async def _fetch_network(
        self, url: str, options: FetchOptions, policy: FetchPolicy
    ) -> Any:
        timeout = policy.timeout_seconds
        if timeout is None:
            timeout = self.default_timeout_seconds
        try:
            async with asyncio.timeout(timeout):
                response = await self.fetcher.fetch(url, options)
                if not response.ok:
                    raise HTTPStatusError(url, response.status)
                return await response.json()
        except TimeoutError as e:
            raise FetchTimeoutError(url, timeout) from e

    async def _load(
        self, key: str, url: str, options: FetchOptions, policy: FetchPolicy
    ) -> Any:
        data = await self._fetch_network(url, options, policy)
        self.priority_cache.set(key, data, policy.cache_policy())
        return data

    async def _load_coalesced(
        self, key: str, url: str, options: FetchOptions, policy: FetchPolicy
    ) -> Any:
        shared = self._in_flight.get(key)
        if shared is not None:
            fetch_log.debug(f"Joining in-flight request for {key}")
        else:
            try:
                shared = self.create_task(
                    self._load_shared(key, url, options, policy), name=f"load:{key}"
                )
            except RuntimeError as e:
                fetch_log.warning(f"Loading {key} without coalescing: {e}")
                return await self._load(key, url, options, policy)
            self._in_flight[key] = shared
        # Each caller's cancellation stays with that caller
        return await asyncio.shield(shared)

    async def _load_shared(
        self, key: str, url: str, options: FetchOptions, policy: FetchPolicy
    ) -> Any:
        try:
            return await self._load(key, url, options, policy)
        finally:
            self._in_flight.pop(key, None)

    def _fallback(
        self, key: str, url: str, lookup: CacheLookup, error: Exception
    ) -> Any:
        if lookup.has_stale:
            fetch_log.warning(
                f"Request failed, serving stale cache for {url}: {error}"
            )
            return lookup.stale_value

        # Another caller may have filled the key while this one was waiting
        current = self.priority_cache.expiring_cache.lookup(key)
        if current.hit:
            fetch_log.warning(
                f"Request failed, serving cached value for {url}: {error}"
            )
            return current.value

        fetch_log.error(f"Request failed with no cached fallback: {url}: {error}")
        raise error

    # Background revalidation

    def _spawn_revalidation(
        self, key: str, url: str, options: FetchOptions, policy: FetchPolicy
    ) -> None:
        generation = self.priority_cache.generation(key)
        try:
            self.create_task(
                self._revalidate(key, url, options, policy, generation),
                name=f"revalidate:{key}",
            )
        except RuntimeError as e:
            fetch_log.warning(f"Skipping background refresh of {key}: {e}")

    async def _revalidate(
        self,
        key: str,
        url: str,
        options: FetchOptions,
        policy: FetchPolicy,
        generation: int,
    ) -> None:
        try:
            fresh = await self._fetch_network(url, options, policy)
        except Exception as e:
            fetch_log.error(f"Background refresh failed for {url}: {e}")
            self._notify(RevalidationOutcome(key, url, succeeded=False, error=e))
            return

        if self.priority_cache.generation(key) != generation:
            fetch_log.debug(f"Discarding background refresh of {key}: key rewritten")
            self._notify(RevalidationOutcome(key, url, succeeded=True, stored=False))
            return

        stored = self.priority_cache.set(key, fresh, policy.cache_policy())
        fetch_log.debug(f"Background refresh of {key} complete")
        self._notify(RevalidationOutcome(key, url, succeeded=True, stored=stored))
