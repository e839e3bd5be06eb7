"""
Price Sources.

Ordered by preference when wired into a PriceResolver:
- DexScreenerSource (primary)
- CoinGeckoSource (secondary)
"""

from .base import BasePriceSource
from .coingecko import CoinGeckoSource
from .dexscreener import DexScreenerSource

__all__ = [
    "BasePriceSource",
    "CoinGeckoSource",
    "DexScreenerSource",
]
