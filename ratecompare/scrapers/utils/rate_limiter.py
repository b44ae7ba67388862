"""Sliding-window rate limiter for outbound channel requests.

Each channel adapter owns one :class:`ChannelRateLimiter`. The limiter keeps
a one-hour request history in a fixed-size ring buffer and delays admission
until the per-hour, per-minute and per-second budgets all allow another
request. Requests are never rejected, only delayed.
"""

import asyncio
import time
from typing import Awaitable, Callable, Dict, List, NamedTuple, Optional

import structlog

from ratecompare.config import RateLimitPolicy

logger = structlog.get_logger(__name__)

HOUR = 3600.0
MINUTE = 60.0
SECOND = 1.0


class RequestHistoryEntry(NamedTuple):
    timestamp: float
    url: str


class RequestLedger:
    """Bounded ring buffer of recent requests, oldest first.

    The arena is allocated once with ``capacity`` slots; ``_head`` points at
    the oldest live entry. Appending to a full ledger overwrites the oldest.
    """

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._slots: List[Optional[RequestHistoryEntry]] = [None] * capacity
        self._head = 0
        self._size = 0

    @property
    def capacity(self) -> int:
        return len(self._slots)

    def __len__(self) -> int:
        return self._size

    def append(self, timestamp: float, url: str) -> None:
        entry = RequestHistoryEntry(timestamp, url)
        if self._size == self.capacity:
            self._slots[self._head] = entry
            self._head = (self._head + 1) % self.capacity
            return
        self._slots[(self._head + self._size) % self.capacity] = entry
        self._size += 1

    def oldest(self) -> Optional[RequestHistoryEntry]:
        return self._slots[self._head] if self._size else None

    def prune(self, cutoff: float) -> int:
        """Drop entries with ``timestamp <= cutoff``. Returns how many."""
        dropped = 0
        while self._size and self._slots[self._head].timestamp <= cutoff:
            self._slots[self._head] = None
            self._head = (self._head + 1) % self.capacity
            self._size -= 1
            dropped += 1
        return dropped

    def count_since(self, cutoff: float) -> int:
        """Number of entries strictly newer than ``cutoff``."""
        count = 0
        # Newest entries sit at the tail; stop at the first older one.
        for i in range(self._size - 1, -1, -1):
            entry = self._slots[(self._head + i) % self.capacity]
            if entry.timestamp <= cutoff:
                break
            count += 1
        return count

    def entries(self) -> List[RequestHistoryEntry]:
        return [
            self._slots[(self._head + i) % self.capacity] for i in range(self._size)
        ]


class ChannelRateLimiter:
    """Per-channel admission control over a :class:`RequestLedger`.

    ``clock`` and ``sleep`` are injectable so tests can drive a fake clock.
    Admissions on one limiter are serialized.
    """

    def __init__(
        self,
        policy: RateLimitPolicy,
        channel: str = "",
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.policy = policy
        self.channel = channel
        self.ledger = RequestLedger(policy.max_per_hour)
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self.logger = logger.bind(channel=channel)

    async def admit(self, url: str) -> None:
        """Wait until a request to ``url`` is within budget, then record it."""
        async with self._lock:
            while True:
                now = self._clock()
                self.ledger.prune(now - HOUR)

                if len(self.ledger) >= self.policy.max_per_hour:
                    wait = self.ledger.oldest().timestamp + HOUR - now
                    self.logger.warning(
                        "hourly_limit_reached",
                        max_per_hour=self.policy.max_per_hour,
                        wait_seconds=round(wait, 2),
                    )
                    await self._sleep(max(wait, 0.0))
                    continue

                if (
                    self.ledger.count_since(now - MINUTE) >= self.policy.requests_per_minute
                    or self.ledger.count_since(now - SECOND) >= self.policy.burst_limit
                ):
                    await self._sleep(SECOND)
                    continue

                self.ledger.append(now, url)
                return

    def stats(self) -> Dict[str, int]:
        """Current usage of the hourly and per-minute budgets."""
        now = self._clock()
        last_hour = self.ledger.count_since(now - HOUR)
        return {
            "requests_last_hour": last_hour,
            "requests_last_minute": self.ledger.count_since(now - MINUTE),
            "remaining_hourly": max(self.policy.max_per_hour - last_hour, 0),
            "max_per_hour": self.policy.max_per_hour,
        }
