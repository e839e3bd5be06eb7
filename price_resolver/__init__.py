"""
Price Resolver Package - token metadata and USD prices.

Features:
- TTL caches with an injectable clock
- Ordered source fallback (DexScreener, then CoinGecko)
- Bounded retries that tell rate limits from hard failures
- Degrades to price 0 / decimals 18 instead of raising

Quick Start:
    from price_resolver import PriceResolver, ResolverConfig

    resolver = PriceResolver.from_config(ResolverConfig.from_env())
    metadata, quote = await resolver.resolve(token_address)
"""

from .cache import TTLCache
from .config import DEFAULT_STABLECOINS, ResolverConfig
from .exceptions import (
    FetchError,
    MetadataResolutionError,
    PriceNotFoundError,
    PriceResolverError,
    RateLimitError,
    RpcError,
)
from .metadata import MetadataResolver
from .models import PriceQuote, TokenMetadata
from .resolver import PriceResolver
from .rpc import JsonRpcClient
from .sources import BasePriceSource, CoinGeckoSource, DexScreenerSource

__all__ = [
    "TTLCache",
    "DEFAULT_STABLECOINS",
    "ResolverConfig",
    "FetchError",
    "MetadataResolutionError",
    "PriceNotFoundError",
    "PriceResolverError",
    "RateLimitError",
    "RpcError",
    "MetadataResolver",
    "PriceQuote",
    "TokenMetadata",
    "PriceResolver",
    "JsonRpcClient",
    "BasePriceSource",
    "CoinGeckoSource",
    "DexScreenerSource",
]
