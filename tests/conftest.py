"""Pytest configuration and fixtures for pricache testing.

Every engine built here uses a ``ManualClock`` and an in-memory backend, so
tests control time explicitly and never touch the network.
"""

import asyncio
from collections.abc import AsyncGenerator, Callable
from dataclasses import dataclass, field
from typing import Any

import pytest
import pytest_asyncio

from pricache.core.clock import ManualClock
from pricache.core.config import CacheEngineSettings
from pricache.core.engine import CacheEngine
from pricache.core.network import BufferedResponse, FetchOptions
from pricache.core.persistence.backend import MemoryStorageBackend
from pricache.core.serialization import JsonSerializer


@dataclass
class ScriptedFetcher:
    """Fake network: returns queued payloads, or raises queued errors.

    With an empty queue it returns ``default_payload``. ``delay`` makes every
    call suspend, which lets tests overlap requests or trigger timeouts.
    """

    default_payload: Any = field(default_factory=lambda: {"value": "fresh"})
    status: int = 200
    delay: float = 0.0
    responses: list[Any] = field(default_factory=list)
    calls: list[tuple[str, FetchOptions]] = field(default_factory=list)

    def queue(self, *items: Any) -> None:
        self.responses.extend(items)

    @property
    def call_count(self) -> int:
        return len(self.calls)

    async def fetch(self, url: str, options: FetchOptions) -> BufferedResponse:
        self.calls.append((url, options))
        if self.delay:
            await asyncio.sleep(self.delay)
        item = self.responses.pop(0) if self.responses else self.default_payload
        if isinstance(item, BaseException):
            raise item
        return BufferedResponse(
            status=self.status, body=JsonSerializer().serialize(item)
        )


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def storage() -> MemoryStorageBackend:
    return MemoryStorageBackend()


@pytest.fixture
def fetcher() -> ScriptedFetcher:
    return ScriptedFetcher()


@pytest.fixture
def make_engine(
    clock: ManualClock, storage: MemoryStorageBackend, fetcher: ScriptedFetcher
) -> Callable[..., CacheEngine]:
    """Build engines sharing the test's clock, storage and fetcher."""

    def _make(**overrides: Any) -> CacheEngine:
        engine_storage = overrides.pop("storage", storage)
        settings = CacheEngineSettings(**overrides)
        return CacheEngine(
            settings, storage=engine_storage, clock=clock, fetcher=fetcher
        )

    return _make


@pytest.fixture
def engine(make_engine: Callable[..., CacheEngine]) -> CacheEngine:
    return make_engine(limit_bytes=1000)


@pytest_asyncio.fixture
async def async_engine(
    make_engine: Callable[..., CacheEngine],
) -> AsyncGenerator[CacheEngine, None]:
    """Engine whose background tasks are cleaned up after the test."""
    engine = make_engine(limit_bytes=10_000)
    yield engine
    await engine.shutdown()


def _payload_of_size(size_bytes: int) -> str:
    assert size_bytes >= 2
    return "x" * (size_bytes - 2)


@pytest.fixture
def payload_of_size() -> Callable[[int], str]:
    """Builds strings whose JSON encoding is exactly the requested size."""
    return _payload_of_size
