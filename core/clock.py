"""
Core Module - Clock.

============================================================
RESPONSIBILITY
============================================================
One source of "now" and "wait" for the whole monitor.

- TTL caches read expiry time from it
- Retry and reconnect backoff sleep through it
- WhaleTransaction timestamps are taken from it

Tests swap in MockClock so backoff schedules and cache expiry
can be asserted without real waiting.

============================================================
"""

import asyncio
import time
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import List, Optional


# ============================================================
# CLOCK PROTOCOL
# ============================================================

class ClockProtocol(ABC):
    """What components need from a clock. All datetimes are UTC."""

    @abstractmethod
    def now(self) -> datetime:
        pass

    @abstractmethod
    def timestamp(self) -> float:
        """Seconds since the epoch; used for cache expiry arithmetic."""
        pass

    @abstractmethod
    async def sleep(self, seconds: float) -> None:
        pass


# ============================================================
# SYSTEM CLOCK
# ============================================================

class SystemClock(ClockProtocol):

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def timestamp(self) -> float:
        return time.time()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(max(seconds, 0))


# ============================================================
# MOCK CLOCK
# ============================================================

class MockClock(ClockProtocol):
    """
    Manually driven clock.

    sleep() does not wait: it records the delay in `sleeps`, moves
    time forward by that amount and yields once to the event loop.
    """

    def __init__(self, initial_time: Optional[datetime] = None):
        self._time = initial_time or datetime(2024, 1, 1, tzinfo=timezone.utc)
        self.sleeps: List[float] = []

    def now(self) -> datetime:
        return self._time

    def timestamp(self) -> float:
        return self._time.timestamp()

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.advance(seconds)
        await asyncio.sleep(0)

    def set_time(self, new_time: datetime) -> None:
        if new_time.tzinfo is None:
            new_time = new_time.replace(tzinfo=timezone.utc)
        self._time = new_time

    def advance(self, seconds: float = 0, **kwargs) -> None:
        """Move time forward; kwargs go to timedelta (minutes=, hours=)."""
        self._time = self._time + timedelta(seconds=seconds, **kwargs)


# ============================================================
# DEFAULT CLOCK
# ============================================================

class ClockFactory:
    """Process-wide default used when a component is given no clock."""

    _instance: Optional[ClockProtocol] = None

    @classmethod
    def get_clock(cls) -> ClockProtocol:
        if cls._instance is None:
            cls._instance = SystemClock()
        return cls._instance

    @classmethod
    def set_clock(cls, clock: ClockProtocol) -> None:
        cls._instance = clock

    @classmethod
    def reset(cls) -> None:
        cls._instance = SystemClock()


def now_utc() -> datetime:
    return ClockFactory.get_clock().now()


__all__ = [
    "ClockProtocol",
    "SystemClock",
    "MockClock",
    "ClockFactory",
    "now_utc",
]
