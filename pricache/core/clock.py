"""Clock capability used for expiry and access bookkeeping.

All timestamps are integer epoch milliseconds, matching the persisted
``expiration`` field of cache entries.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Protocol, TypeAlias

TimestampMs: TypeAlias = int

MS_PER_SECOND = 1000
MS_PER_MINUTE = 60 * MS_PER_SECOND


class Clock(Protocol):
    def now(self) -> TimestampMs: ...


@dataclass(slots=True)
class SystemClock:
    """Wall-clock time."""

    def now(self) -> TimestampMs:
        return int(time.time() * MS_PER_SECOND)


@dataclass(slots=True)
class ManualClock:
    """Deterministic clock that only moves when told to."""

    current_ms: TimestampMs = 1_700_000_000_000

    def now(self) -> TimestampMs:
        return self.current_ms

    def advance(
        self, *, minutes: float = 0, seconds: float = 0, milliseconds: float = 0
    ) -> TimestampMs:
        """Move the clock forward and return the new time."""
        delta = minutes * MS_PER_MINUTE + seconds * MS_PER_SECOND + milliseconds
        if delta < 0:
            raise ValueError("ManualClock cannot move backwards")
        self.current_ms += int(delta)
        return self.current_ms
