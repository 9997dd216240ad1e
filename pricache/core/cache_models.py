"""
Shared cache data models for pricache.

Priority classes, caching policies and per-key metadata live here so the
registry, evictor, orchestrator and persistence code can share them without
circular imports.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .clock import TimestampMs


class PriorityClass(Enum):
    """Eviction priority, ordered TRANSIENT < LOW < MEDIUM < HIGH < CRITICAL."""

    TRANSIENT = "transient"  # Disposable, evicted first
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"  # Never chosen for eviction

    @property
    def rank(self) -> int:
        return _PRIORITY_ORDER.index(self)

    @classmethod
    def parse(cls, value: PriorityClass | str) -> PriorityClass:
        """Accept an enum member or its (case-insensitive) name/value."""
        if isinstance(value, PriorityClass):
            return value
        normalized = value.strip().lower()
        for member in cls:
            if member.value == normalized:
                return member
        raise ValueError(f"Unknown priority class: {value!r}")

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, PriorityClass):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, PriorityClass):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, PriorityClass):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, PriorityClass):
            return NotImplemented
        return self.rank >= other.rank


_PRIORITY_ORDER: tuple[PriorityClass, ...] = (
    PriorityClass.TRANSIENT,
    PriorityClass.LOW,
    PriorityClass.MEDIUM,
    PriorityClass.HIGH,
    PriorityClass.CRITICAL,
)


def normalize_tags(tags: str | Iterable[str] | None) -> frozenset[str]:
    """Turn a single tag, an iterable of tags, or None into a frozenset."""
    if tags is None:
        return frozenset()
    if isinstance(tags, str):
        return frozenset({tags})
    return frozenset(tags)


@dataclass(frozen=True, slots=True)
class CachePolicy:
    """How a single value is cached."""

    priority: PriorityClass = PriorityClass.MEDIUM
    ttl_minutes: float | None = 60.0  # None = never expires
    tags: frozenset[str] = field(default_factory=frozenset)
    stale_while_revalidate: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.priority, PriorityClass):
            object.__setattr__(self, "priority", PriorityClass.parse(self.priority))
        if not isinstance(self.tags, frozenset):
            object.__setattr__(self, "tags", normalize_tags(self.tags))
        if self.ttl_minutes is not None and self.ttl_minutes < 0:
            raise ValueError(f"ttl_minutes must be >= 0, got {self.ttl_minutes}")


@dataclass(frozen=True, slots=True)
class FetchPolicy:
    """Caching policy for a network fetch."""

    priority: PriorityClass = PriorityClass.MEDIUM
    ttl_minutes: float | None = 10.0
    tags: frozenset[str] = field(default_factory=frozenset)
    stale_while_revalidate: bool = False
    cache_key: str | None = None
    timeout_seconds: float | None = None  # None = engine default

    def __post_init__(self) -> None:
        if not isinstance(self.priority, PriorityClass):
            object.__setattr__(self, "priority", PriorityClass.parse(self.priority))
        if not isinstance(self.tags, frozenset):
            object.__setattr__(self, "tags", normalize_tags(self.tags))
        if self.ttl_minutes is not None and self.ttl_minutes < 0:
            raise ValueError(f"ttl_minutes must be >= 0, got {self.ttl_minutes}")
        if self.timeout_seconds is not None and self.timeout_seconds <= 0:
            raise ValueError(
                f"timeout_seconds must be > 0, got {self.timeout_seconds}"
            )

    def cache_policy(self) -> CachePolicy:
        return CachePolicy(
            priority=self.priority,
            ttl_minutes=self.ttl_minutes,
            tags=self.tags,
            stale_while_revalidate=self.stale_while_revalidate,
        )


@dataclass(slots=True)
class CacheMetadata:
    """Bookkeeping for one live key in the registry."""

    key: str
    priority: PriorityClass
    size_bytes: int
    tags: frozenset[str]
    created_at: TimestampMs
    last_access_at: TimestampMs
    hit_count: int = 0
    stale_while_revalidate: bool = False
    # Process-local write stamp, not persisted
    generation: int = 0

    def record_access(self, now: TimestampMs) -> None:
        self.last_access_at = now
        self.hit_count += 1

    def has_any_tag(self, tags: frozenset[str]) -> bool:
        return not self.tags.isdisjoint(tags)

    def to_dict(self) -> dict[str, Any]:
        return {
            "priority": self.priority.value,
            "size_bytes": self.size_bytes,
            "tags": sorted(self.tags),
            "created_at": self.created_at,
            "last_access_at": self.last_access_at,
            "hit_count": self.hit_count,
            "stale_while_revalidate": self.stale_while_revalidate,
        }

    @classmethod
    def from_dict(cls, key: str, data: dict[str, Any]) -> CacheMetadata:
        return cls(
            key=key,
            priority=PriorityClass.parse(data["priority"]),
            size_bytes=int(data["size_bytes"]),
            tags=normalize_tags(data.get("tags", ())),
            created_at=int(data["created_at"]),
            last_access_at=int(data.get("last_access_at", data["created_at"])),
            hit_count=int(data.get("hit_count", 0)),
            stale_while_revalidate=bool(data.get("stale_while_revalidate", False)),
        )


@dataclass(frozen=True, slots=True)
class CacheLookup:
    """Result of a cache read.

    ``stale_value`` is only populated when the entry existed but had expired;
    the orchestrator uses it as a degraded fallback when the network fails.
    """

    hit: bool
    value: Any = None
    expired: bool = False
    stale_value: Any = None

    @property
    def has_stale(self) -> bool:
        return self.expired

    @classmethod
    def miss(cls) -> CacheLookup:
        return _MISS

    @classmethod
    def found(cls, value: Any) -> CacheLookup:
        return cls(hit=True, value=value)

    @classmethod
    def expired_with(cls, stale_value: Any) -> CacheLookup:
        return cls(hit=False, expired=True, stale_value=stale_value)


_MISS = CacheLookup(hit=False)
