"""
Core Module - Retry Policy.

============================================================
RESPONSIBILITY
============================================================
A value object describing how often to retry and how long to
wait between attempts. Shared by price source lookups (bounded
attempts) and log stream reconnection (unbounded attempts).

Delays:
    LINEAR       base * n             (2s, 4s, 6s ...)
    EXPONENTIAL  base * 2 ** (n - 1)  (2s, 4s, 8s ...)

Both are capped at max_delay. Rate-limited attempts multiply the
delay and honour a server supplied Retry-After, still capped.

============================================================
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class BackoffStrategy(Enum):
    """Backoff growth strategy."""

    LINEAR = "linear"
    EXPONENTIAL = "exponential"


@dataclass(frozen=True)
class RetryPolicy:
    """Retry schedule configuration."""

    max_attempts: Optional[int] = 3
    """Attempts per operation. None retries forever."""

    base_delay: float = 2.0
    max_delay: float = 60.0
    strategy: BackoffStrategy = BackoffStrategy.LINEAR
    rate_limit_multiplier: float = 2.5

    def __post_init__(self) -> None:
        if self.max_attempts is not None and self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must be non-negative")

    def delay_for(
        self,
        attempt: int,
        rate_limited: bool = False,
        retry_after: Optional[float] = None,
    ) -> float:
        """
        Delay to wait after the given failed attempt (1-based).

        Args:
            attempt: Number of the attempt that just failed
            rate_limited: Whether the failure was a rate-limit response
            retry_after: Server supplied Retry-After in seconds

        Returns:
            Delay in seconds, never above max_delay
        """
        attempt = max(attempt, 1)

        if self.strategy == BackoffStrategy.EXPONENTIAL:
            delay = self.base_delay * (2 ** (attempt - 1))
        else:
            delay = self.base_delay * attempt

        if rate_limited:
            delay *= self.rate_limit_multiplier
            if retry_after:
                delay = max(delay, retry_after)

        return min(delay, self.max_delay)

    def should_retry(self, attempt: int) -> bool:
        """Whether another attempt is allowed after `attempt` failures."""
        if self.max_attempts is None:
            return True
        return attempt < self.max_attempts

    def to_dict(self) -> dict[str, Any]:
        return {
            "max_attempts": self.max_attempts,
            "base_delay": self.base_delay,
            "max_delay": self.max_delay,
            "strategy": self.strategy.value,
            "rate_limit_multiplier": self.rate_limit_multiplier,
        }
