"""
Core Module Package.

This package contains the infrastructure components that all
other modules depend on.

Components:
- clock: Unified time and sleep abstraction
- retry: Retry and backoff policy
"""

from .clock import ClockFactory, ClockProtocol, MockClock, SystemClock, now_utc
from .retry import BackoffStrategy, RetryPolicy

__all__ = [
    "ClockFactory",
    "ClockProtocol",
    "MockClock",
    "SystemClock",
    "now_utc",
    "BackoffStrategy",
    "RetryPolicy",
]
