"""
Log Subscription Configuration.
"""

import os
from dataclasses import dataclass
from typing import Any, Optional

from core.retry import BackoffStrategy, RetryPolicy


@dataclass
class SubscriptionConfig:
    """Connection and reconnect settings for the log stream."""

    rpc_ws_url: str = "wss://base-rpc.publicnode.com"

    # Reconnect: 5s, 10s, 15s ... capped, retried until stop()
    reconnect_base_delay_seconds: float = 5.0
    reconnect_max_delay_seconds: float = 60.0
    reconnect_strategy: BackoffStrategy = BackoffStrategy.LINEAR

    heartbeat_seconds: float = 20.0
    request_timeout_seconds: float = 15.0
    queue_size: int = 10_000

    # Watchlist reload period; None disables
    watchlist_refresh_seconds: Optional[float] = 300.0

    @property
    def reconnect_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=None,
            base_delay=self.reconnect_base_delay_seconds,
            max_delay=self.reconnect_max_delay_seconds,
            strategy=self.reconnect_strategy,
        )

    @classmethod
    def from_env(cls) -> "SubscriptionConfig":
        config = cls()
        config.rpc_ws_url = os.environ.get("WHALE_RPC_WS_URL", config.rpc_ws_url)
        refresh = os.environ.get("WHALE_WATCHLIST_REFRESH_SECONDS")
        if refresh is not None:
            config.watchlist_refresh_seconds = float(refresh) or None
        return config

    def to_dict(self) -> dict[str, Any]:
        # URLs often embed provider keys
        return {
            "rpc_ws_url": self.rpc_ws_url.split("?")[0],
            "reconnect_policy": self.reconnect_policy.to_dict(),
            "heartbeat_seconds": self.heartbeat_seconds,
            "request_timeout_seconds": self.request_timeout_seconds,
            "watchlist_refresh_seconds": self.watchlist_refresh_seconds,
        }
