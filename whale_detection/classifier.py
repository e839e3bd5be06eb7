"""
Transaction Classifier.

============================================================
RULES
============================================================
Transfer:
    to   is a pool, or the token is a stablecoin  -> SELL
    from is a pool                                 -> BUY
    otherwise (wallet to wallet)                   -> TRANSFER

Swap on the tracked token's pool (signed leg of that token):
    leg > 0  token flowed INTO the pool            -> SELL
    leg < 0  token flowed OUT of the pool          -> BUY
    leg = 0                                        -> TRANSFER

Addresses are compared lowercase.

============================================================
"""

import logging
from typing import Iterable

from event_decoder.models import DecodedEvent, SwapEvent, TransferEvent
from whale_detection.models import Direction
from whale_detection.watchlist import WatchedToken


logger = logging.getLogger(__name__)


class TransactionClassifier:
    """Assigns a Direction to decoded events."""

    def __init__(
        self,
        pool_addresses: Iterable[str] = (),
        stablecoin_addresses: Iterable[str] = (),
    ) -> None:
        self._pools = frozenset(a.lower() for a in pool_addresses)
        self._stablecoins = frozenset(a.lower() for a in stablecoin_addresses)

    @property
    def pool_addresses(self) -> frozenset[str]:
        return self._pools

    def update_pools(self, pool_addresses: Iterable[str]) -> None:
        self._pools = frozenset(a.lower() for a in pool_addresses)

    def is_pool(self, address: str) -> bool:
        return address.lower() in self._pools

    def classify(self, event: DecodedEvent, token: WatchedToken) -> Direction:
        if isinstance(event, TransferEvent):
            return self.classify_transfer(event, token)
        if isinstance(event, SwapEvent):
            return self.classify_swap(event, token)
        raise TypeError(f"Unsupported event type: {type(event).__name__}")

    def classify_transfer(self, event: TransferEvent, token: WatchedToken) -> Direction:
        if self.is_pool(event.to_address) or token.token_address in self._stablecoins:
            return Direction.SELL
        if self.is_pool(event.from_address):
            return Direction.BUY
        return Direction.TRANSFER

    def classify_swap(self, event: SwapEvent, token: WatchedToken) -> Direction:
        leg = event.leg(token.pool_token_index)
        if leg > 0:
            return Direction.SELL
        if leg < 0:
            return Direction.BUY
        return Direction.TRANSFER
