"""
Network fetch primitive consumed by the fetch orchestrator.

A fetcher returns a response exposing ``ok``, ``status`` and an async
``json()``. Timeouts are applied by the orchestrator through task
cancellation, so fetchers only need to be cancellation-safe.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol, TypeAlias

import aiohttp
from loguru import logger

from .errors import FetchError
from .serialization import JsonSerializer

FetchOptions: TypeAlias = Mapping[str, Any]


class FetchResponse(Protocol):
    @property
    def ok(self) -> bool: ...

    @property
    def status(self) -> int: ...

    async def json(self) -> Any: ...


class Fetcher(Protocol):
    async def fetch(self, url: str, options: FetchOptions) -> FetchResponse: ...


@dataclass(frozen=True, slots=True)
class BufferedResponse:
    """A response whose body has already been read."""

    status: int
    body: bytes = b""
    headers: Mapping[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    async def json(self) -> Any:
        return JsonSerializer().deserialize(self.body)


# aiohttp request keyword arguments accepted from fetch options
_REQUEST_OPTIONS = frozenset({"headers", "params", "json", "data", "cookies", "ssl"})


@dataclass(slots=True)
class AiohttpFetcher:
    """Fetcher backed by a shared ``aiohttp.ClientSession``.

    Options follow the ``fetch`` convention: ``method`` (default GET) plus
    ``headers``, ``params``, ``json``, ``data``, ``cookies`` and ``ssl``.
    """

    session: aiohttp.ClientSession | None = None
    _owns_session: bool = field(init=False, default=False)

    async def _get_session(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession()
            self._owns_session = True
        return self.session

    async def fetch(self, url: str, options: FetchOptions) -> BufferedResponse:
        session = await self._get_session()
        method = str(options.get("method", "GET")).upper()
        request_kwargs = {k: v for k, v in options.items() if k in _REQUEST_OPTIONS}
        try:
            async with session.request(method, url, **request_kwargs) as response:
                body = await response.read()
                return BufferedResponse(
                    status=response.status,
                    body=body,
                    headers=dict(response.headers),
                )
        except aiohttp.ClientError as e:
            raise FetchError(url, f"Network request failed: {e}") from e

    async def close(self) -> None:
        if self._owns_session and self.session is not None:
            await self.session.close()
            logger.debug("Closed aiohttp session")
        self.session = None
        self._owns_session = False
