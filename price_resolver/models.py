"""
Price Resolver Models.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any


DEFAULT_DECIMALS = 18

STABLECOIN_SOURCE = "stablecoin"
UNKNOWN_SOURCE = "unknown"


@dataclass(frozen=True)
class TokenMetadata:
    """On-chain token facts needed to scale raw amounts."""

    token_address: str
    decimals: int
    total_supply_raw: int
    cached_at: datetime
    is_fallback: bool = False
    """True when at least one field could not be read and was defaulted."""

    @property
    def total_supply(self) -> Decimal:
        """Total supply in whole token units."""
        return Decimal(self.total_supply_raw).scaleb(-self.decimals)

    def to_units(self, raw_amount: int) -> Decimal:
        """Scale a raw integer amount by decimals."""
        return Decimal(raw_amount).scaleb(-self.decimals)

    def to_dict(self) -> dict[str, Any]:
        return {
            "token_address": self.token_address,
            "decimals": self.decimals,
            "total_supply_raw": str(self.total_supply_raw),
            "cached_at": self.cached_at.isoformat(),
            "is_fallback": self.is_fallback,
        }


@dataclass(frozen=True)
class PriceQuote:
    """USD price for one token. A price of 0 means unknown."""

    token_address: str
    usd_price: Decimal
    source: str
    cached_at: datetime

    @property
    def is_known(self) -> bool:
        return self.usd_price > 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "token_address": self.token_address,
            "usd_price": str(self.usd_price),
            "source": self.source,
            "cached_at": self.cached_at.isoformat(),
        }
