"""
Monitor Configuration - one object for the whole process.

Each component keeps its own dataclass; MonitorConfig groups them
with the settings only the orchestrator needs. Values come from
defaults, then the environment (and a `.env` file), then CLI flags.
"""

import os
from dataclasses import dataclass, field
from typing import Any, Optional

from dotenv import load_dotenv

from log_subscription.config import SubscriptionConfig
from price_resolver.config import ResolverConfig
from storage.database import DEFAULT_DATABASE_URL
from whale_detection.config import ThresholdConfig


@dataclass
class MonitorConfig:
    """Top-level configuration for the whale monitor."""

    thresholds: ThresholdConfig = field(default_factory=ThresholdConfig)
    resolver: ResolverConfig = field(default_factory=ResolverConfig)
    subscription: SubscriptionConfig = field(default_factory=SubscriptionConfig)

    database_url: str = DEFAULT_DATABASE_URL
    watchlist_path: str = "watchlist.json"

    log_level: str = "INFO"
    log_format: str = "json"

    # In-flight pipeline tasks get this long to finish on shutdown
    drain_timeout_seconds: float = 30.0

    # Bound on the in-memory set of recently stored tx hashes
    dedup_recent_capacity: int = 10_000

    def validate(self) -> list[str]:
        errors = []
        if not self.subscription.rpc_ws_url.startswith(("ws://", "wss://")):
            errors.append("rpc_ws_url must be a ws:// or wss:// URL")
        if not self.resolver.rpc_http_url.startswith(("http://", "https://")):
            errors.append("rpc_http_url must be an http:// or https:// URL")
        if self.thresholds.swap_usd_floor < 0 or self.thresholds.transfer_usd_floor < 0:
            errors.append("USD floors must not be negative")
        if self.thresholds.min_percent_supply < 0:
            errors.append("min_percent_supply must not be negative")
        if self.log_format not in ("json", "text"):
            errors.append("log_format must be 'json' or 'text'")
        if self.drain_timeout_seconds <= 0:
            errors.append("drain_timeout_seconds must be positive")
        return errors

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> "MonitorConfig":
        """Build from environment variables, loading `.env` first."""
        load_dotenv(dotenv_path)
        return cls(
            thresholds=ThresholdConfig.from_env(),
            resolver=ResolverConfig.from_env(),
            subscription=SubscriptionConfig.from_env(),
            database_url=os.environ.get("WHALE_DATABASE_URL", DEFAULT_DATABASE_URL),
            watchlist_path=os.environ.get("WHALE_WATCHLIST_PATH", "watchlist.json"),
            log_level=os.environ.get("WHALE_LOG_LEVEL", "INFO"),
            log_format=os.environ.get("WHALE_LOG_FORMAT", "json"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "thresholds": self.thresholds.to_dict(),
            "resolver": self.resolver.to_dict(),
            "subscription": self.subscription.to_dict(),
            "database_url": self.database_url.split("@")[-1],
            "watchlist_path": self.watchlist_path,
            "log_level": self.log_level,
            "log_format": self.log_format,
            "drain_timeout_seconds": self.drain_timeout_seconds,
        }


# Default configuration instance
_default_config: Optional[MonitorConfig] = None


def get_config() -> MonitorConfig:
    """Get the default configuration."""
    global _default_config
    if _default_config is None:
        _default_config = MonitorConfig.from_env()
    return _default_config


def set_config(config: MonitorConfig) -> None:
    """Set the default configuration."""
    global _default_config
    _default_config = config
