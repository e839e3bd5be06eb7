"""
Price Resolver Configuration.

Defaults target Base mainnet. API keys and endpoints are read
from environment variables.
"""

import os
from dataclasses import dataclass, field
from typing import Any, Optional

from core.retry import BackoffStrategy, RetryPolicy


# Base mainnet stablecoins
DEFAULT_STABLECOINS: tuple[str, ...] = (
    "0x833589fcd6edb6e08f4c7c32d4f71b54bda02913",  # USDC
    "0xd9aaec86b65d86f6a7b5b1b0c42ffa531710b6ca",  # USDbC
)


def _env_list(name: str) -> Optional[list[str]]:
    value = os.environ.get(name)
    if not value:
        return None
    return [item.strip().lower() for item in value.split(",") if item.strip()]


@dataclass
class ResolverConfig:
    """Configuration for metadata and price resolution."""

    # Chain RPC (eth_call)
    rpc_http_url: str = "https://mainnet.base.org"
    rpc_timeout_seconds: float = 10.0

    # Cache TTLs
    metadata_ttl_seconds: float = 60.0
    price_ttl_seconds: float = 60.0

    # Upper bound on one price resolution, across all sources
    resolve_timeout_seconds: float = 45.0

    # Sources
    dexscreener_base_url: str = "https://api.dexscreener.com/latest/dex"
    dexscreener_chain_id: str = "base"
    coingecko_base_url: str = "https://api.coingecko.com/api/v3"
    coingecko_platform: str = "base"
    coingecko_api_key: Optional[str] = None
    source_timeout_seconds: float = 10.0

    # Retry per source
    max_attempts: int = 3
    retry_base_delay_seconds: float = 2.0
    retry_max_delay_seconds: float = 30.0
    rate_limit_multiplier: float = 2.5

    stablecoin_addresses: list[str] = field(default_factory=lambda: list(DEFAULT_STABLECOINS))

    def __post_init__(self) -> None:
        self.stablecoin_addresses = [a.lower() for a in self.stablecoin_addresses]

    @property
    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.max_attempts,
            base_delay=self.retry_base_delay_seconds,
            max_delay=self.retry_max_delay_seconds,
            strategy=BackoffStrategy.LINEAR,
            rate_limit_multiplier=self.rate_limit_multiplier,
        )

    @classmethod
    def from_env(cls) -> "ResolverConfig":
        config = cls()
        config.rpc_http_url = os.environ.get("WHALE_RPC_HTTP_URL", config.rpc_http_url)
        config.coingecko_api_key = os.environ.get("COINGECKO_API_KEY") or None
        if "WHALE_PRICE_TTL_SECONDS" in os.environ:
            config.price_ttl_seconds = float(os.environ["WHALE_PRICE_TTL_SECONDS"])
        if "WHALE_METADATA_TTL_SECONDS" in os.environ:
            config.metadata_ttl_seconds = float(os.environ["WHALE_METADATA_TTL_SECONDS"])
        stablecoins = _env_list("WHALE_STABLECOIN_ADDRESSES")
        if stablecoins is not None:
            config.stablecoin_addresses = stablecoins
        return config

    def to_dict(self) -> dict[str, Any]:
        return {
            "rpc_http_url": self.rpc_http_url,
            "metadata_ttl_seconds": self.metadata_ttl_seconds,
            "price_ttl_seconds": self.price_ttl_seconds,
            "resolve_timeout_seconds": self.resolve_timeout_seconds,
            "coingecko_platform": self.coingecko_platform,
            "coingecko_api_key_set": bool(self.coingecko_api_key),
            "retry_policy": self.retry_policy.to_dict(),
            "stablecoin_addresses": self.stablecoin_addresses,
        }
