"""
Whale Detection Configuration - qualification thresholds.

All thresholds are configurable for tuning via environment.
"""

import os
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from event_decoder.models import EventKind


@dataclass
class ThresholdConfig:
    """Qualification floors. An event qualifies on EITHER floor."""

    swap_usd_floor: Decimal = Decimal("10000")
    transfer_usd_floor: Decimal = Decimal("100000")
    min_percent_supply: Decimal = Decimal("0.2")

    # Extra addresses treated as pools by the classifier (routers, other venues)
    extra_pool_addresses: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.swap_usd_floor = Decimal(str(self.swap_usd_floor))
        self.transfer_usd_floor = Decimal(str(self.transfer_usd_floor))
        self.min_percent_supply = Decimal(str(self.min_percent_supply))
        self.extra_pool_addresses = [a.lower() for a in self.extra_pool_addresses]

    def usd_floor(self, kind: EventKind) -> Decimal:
        return self.swap_usd_floor if kind == EventKind.SWAP else self.transfer_usd_floor

    @classmethod
    def from_env(cls) -> "ThresholdConfig":
        config = cls()
        if "WHALE_SWAP_USD_FLOOR" in os.environ:
            config.swap_usd_floor = Decimal(os.environ["WHALE_SWAP_USD_FLOOR"])
        if "WHALE_TRANSFER_USD_FLOOR" in os.environ:
            config.transfer_usd_floor = Decimal(os.environ["WHALE_TRANSFER_USD_FLOOR"])
        if "WHALE_MIN_PERCENT_SUPPLY" in os.environ:
            config.min_percent_supply = Decimal(os.environ["WHALE_MIN_PERCENT_SUPPLY"])
        pools = os.environ.get("WHALE_POOL_ADDRESSES")
        if pools:
            config.extra_pool_addresses = [
                p.strip().lower() for p in pools.split(",") if p.strip()
            ]
        return config

    def to_dict(self) -> dict[str, Any]:
        return {
            "swap_usd_floor": str(self.swap_usd_floor),
            "transfer_usd_floor": str(self.transfer_usd_floor),
            "min_percent_supply": str(self.min_percent_supply),
            "extra_pool_addresses": self.extra_pool_addresses,
        }
