"""
Whale Detection Models.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from event_decoder.models import EventKind, SwapEvent


class Direction(Enum):
    """Economic direction of a transaction relative to the tracked token."""

    BUY = "buy"
    SELL = "sell"
    TRANSFER = "transfer"


@dataclass(frozen=True)
class Valuation:
    """Amount of a movement in token units, USD and percent of supply."""

    amount_token: Decimal
    amount_usd: Decimal
    percent_supply: Decimal
    usd_price: Decimal

    @property
    def has_price(self) -> bool:
        return self.usd_price > 0


@dataclass(frozen=True)
class SwapDetails:
    """
    Both legs of a pool swap in raw integer units.

    Token indexes are pool positions (0 = token0, 1 = token1). The leg
    the pool received is "in", the leg it paid out is "out".
    """

    amount_in_raw: int
    amount_out_raw: int
    token_in_index: int
    token_out_index: int

    @classmethod
    def from_event(cls, event: SwapEvent) -> "SwapDetails":
        token_in = 0 if event.amount0 > 0 else 1
        token_out = 1 - token_in
        return cls(
            amount_in_raw=abs(event.leg(token_in)),
            amount_out_raw=abs(event.leg(token_out)),
            token_in_index=token_in,
            token_out_index=token_out,
        )

    def counter_leg(self, watched_index: int) -> tuple[int, str]:
        """Raw amount of the other pool token and whether it went "in" or "out"."""
        if watched_index == self.token_in_index:
            return self.amount_out_raw, "out"
        return self.amount_in_raw, "in"

    def to_dict(self) -> dict[str, Any]:
        return {
            "amount_in_raw": str(self.amount_in_raw),
            "amount_out_raw": str(self.amount_out_raw),
            "token_in_index": self.token_in_index,
            "token_out_index": self.token_out_index,
        }


@dataclass(frozen=True)
class WhaleTransaction:
    """A qualifying whale movement. Immutable; `id` is the tx hash."""

    id: str
    token_address: str
    token_symbol: str
    event_type: EventKind
    direction: Direction
    amount_token: Decimal
    amount_usd: Decimal
    percent_supply: Decimal
    from_address: Optional[str]
    to_address: Optional[str]
    source: str
    block_number: int
    log_index: int
    timestamp: datetime
    swap_details: Optional[SwapDetails] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "token_address": self.token_address,
            "token_symbol": self.token_symbol,
            "event_type": self.event_type.value,
            "direction": self.direction.value,
            "amount_token": str(self.amount_token),
            "amount_usd": str(self.amount_usd),
            "percent_supply": str(self.percent_supply),
            "from_address": self.from_address,
            "to_address": self.to_address,
            "source": self.source,
            "block_number": self.block_number,
            "log_index": self.log_index,
            "timestamp": self.timestamp.isoformat(),
            "swap_details": self.swap_details.to_dict() if self.swap_details else None,
        }
