"""
Threshold Filter & Deduplicator.

============================================================
VALUATION
============================================================
    amount_token   = raw / 10 ** decimals
    amount_usd     = amount_token * usd_price
    percent_supply = 100 * amount_token / total_supply   (0 if supply is 0)

All arithmetic is Decimal.

============================================================
QUALIFICATION
============================================================
    amount_usd >= usd_floor(kind)  OR  percent_supply >= min_percent_supply

An unknown price (0) or a zero amount never qualifies, whatever
the share of supply.

============================================================
"""

import logging
from collections import OrderedDict
from decimal import Decimal
from typing import Any, Optional

from event_decoder.models import EventKind
from price_resolver.models import TokenMetadata
from whale_detection.config import ThresholdConfig
from whale_detection.models import Valuation


logger = logging.getLogger(__name__)


class ThresholdFilter:
    """Computes valuations and applies qualification floors."""

    def __init__(self, config: Optional[ThresholdConfig] = None) -> None:
        self._config = config or ThresholdConfig()

    @property
    def config(self) -> ThresholdConfig:
        return self._config

    def evaluate(
        self,
        raw_amount: int,
        metadata: TokenMetadata,
        usd_price: Decimal,
    ) -> Valuation:
        amount_token = metadata.to_units(abs(raw_amount))
        amount_usd = amount_token * usd_price

        total_supply = metadata.total_supply
        if total_supply > 0:
            percent_supply = amount_token / total_supply * 100
        else:
            percent_supply = Decimal(0)

        return Valuation(
            amount_token=amount_token,
            amount_usd=amount_usd,
            percent_supply=percent_supply,
            usd_price=usd_price,
        )

    def qualifies(self, kind: EventKind, valuation: Valuation) -> bool:
        if not valuation.has_price or valuation.amount_token <= 0:
            return False
        if valuation.amount_usd >= self._config.usd_floor(kind):
            return True
        return valuation.percent_supply >= self._config.min_percent_supply


class Deduplicator:
    """
    Rejects transaction ids that are already stored.

    `store` is anything with `async exists(tx_id) -> bool`. Ids
    persisted by this process are also remembered in a bounded
    in-memory set so repeats skip the store round trip. The store's
    primary key remains the final guard against concurrent inserts.
    """

    def __init__(self, store: Any, recent_capacity: int = 10_000) -> None:
        self._store = store
        self._recent: "OrderedDict[str, None]" = OrderedDict()
        self._capacity = recent_capacity
        self._duplicates = 0

    async def is_duplicate(self, tx_id: str) -> bool:
        if tx_id in self._recent:
            self._recent.move_to_end(tx_id)
            self._duplicates += 1
            return True

        if await self._store.exists(tx_id):
            self.mark_seen(tx_id)
            self._duplicates += 1
            return True

        return False

    def mark_seen(self, tx_id: str) -> None:
        self._recent[tx_id] = None
        self._recent.move_to_end(tx_id)
        while len(self._recent) > self._capacity:
            self._recent.popitem(last=False)

    def get_stats(self) -> dict[str, Any]:
        return {"duplicates": self._duplicates, "recent": len(self._recent)}
