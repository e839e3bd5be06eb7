"""
Orchestrator - Whale Pipeline.

============================================================
RESPONSIBILITY
============================================================
Turns one RawLog into at most one stored WhaleTransaction.

    decode -> watched token -> metadata + price (parallel)
           -> valuation -> direction -> qualification
           -> duplicate check -> persist -> notify

- submit() schedules one task per log and returns immediately
- Every task catches everything at its boundary; a failing log
  never affects another
- drain() waits for tasks already dispatched

============================================================
"""

import asyncio
import logging
from typing import Any, Iterable, Optional, Set

from core.clock import ClockFactory, ClockProtocol
from event_decoder.decoder import EventDecoder
from event_decoder.models import DecodedEvent, EventKind, RawLog, SwapEvent, TransferEvent
from price_resolver.resolver import PriceResolver
from storage.sink import WhaleSink
from whale_detection.classifier import TransactionClassifier
from whale_detection.models import SwapDetails, WhaleTransaction
from whale_detection.thresholds import Deduplicator, ThresholdFilter
from whale_detection.watchlist import WatchedToken, Watchlist


logger = logging.getLogger(__name__)


class WhalePipeline:
    """
    Per-log processing from decode to notification.

    The watchlist is swapped wholesale by set_watchlist(); decoder
    address sets and classifier pools follow it.
    """

    def __init__(
        self,
        decoder: EventDecoder,
        resolver: PriceResolver,
        classifier: TransactionClassifier,
        threshold_filter: ThresholdFilter,
        deduplicator: Deduplicator,
        sink: WhaleSink,
        watchlist: Optional[Watchlist] = None,
        extra_pool_addresses: Iterable[str] = (),
        clock: Optional[ClockProtocol] = None,
    ) -> None:
        self._decoder = decoder
        self._resolver = resolver
        self._classifier = classifier
        self._filter = threshold_filter
        self._dedup = deduplicator
        self._sink = sink
        self._extra_pools = frozenset(a.lower() for a in extra_pool_addresses)
        self._clock = clock or ClockFactory.get_clock()

        self._watchlist = Watchlist()
        self._tasks: Set[asyncio.Task] = set()

        # Stats
        self._received = 0
        self._decoded = 0
        self._dropped = 0
        self._zero_amount = 0
        self._unpriced = 0
        self._below_threshold = 0
        self._duplicates = 0
        self._persisted = 0
        self._not_persisted = 0
        self._handler_errors = 0

        self.set_watchlist(watchlist or Watchlist())

    @property
    def watchlist(self) -> Watchlist:
        return self._watchlist

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def set_watchlist(self, watchlist: Watchlist) -> None:
        self._watchlist = watchlist
        self._decoder.update_addresses(watchlist.token_addresses, watchlist.pool_addresses)
        self._classifier.update_pools(watchlist.pool_addresses | self._extra_pools)
        logger.info(f"[pipeline] Watchlist set: {len(watchlist)} tokens")

    # --------------------------------------------------------
    # DISPATCH
    # --------------------------------------------------------

    def submit(self, log: RawLog) -> asyncio.Task:
        """Schedule processing of one log. Never blocks."""
        task = asyncio.create_task(self._run(log))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, log: RawLog) -> Optional[WhaleTransaction]:
        try:
            return await self.process_log(log)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._handler_errors += 1
            logger.warning(
                f"[pipeline] Processing failed for {log.transaction_hash}:{log.log_index}: {e}",
                exc_info=True,
            )
            return None

    async def drain(self, timeout: Optional[float] = None) -> int:
        """
        Wait for dispatched tasks.

        Returns:
            Number of tasks still running when the timeout expired
        """
        if not self._tasks:
            return 0

        logger.info(f"[pipeline] Draining {len(self._tasks)} in-flight tasks")
        _, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        if pending:
            logger.warning(f"[pipeline] {len(pending)} tasks still running after drain")
        return len(pending)

    # --------------------------------------------------------
    # PROCESSING
    # --------------------------------------------------------

    async def process_log(self, log: RawLog) -> Optional[WhaleTransaction]:
        """
        Run one log through the whole flow.

        Returns:
            The stored WhaleTransaction, or None if the log was
            dropped at any step
        """
        self._received += 1

        event = self._decoder.try_decode(log)
        if event is None:
            self._dropped += 1
            return None
        self._decoded += 1

        token = self._watched_token(event)
        if token is None:
            self._dropped += 1
            logger.debug(f"[pipeline] No watched token for {event.contract_address}")
            return None

        raw_amount = self._raw_amount(event, token)
        if raw_amount == 0:
            self._zero_amount += 1
            return None

        metadata, quote = await self._resolver.resolve(token.token_address)
        valuation = self._filter.evaluate(raw_amount, metadata, quote.usd_price)

        if not valuation.has_price:
            self._unpriced += 1
            logger.info(
                f"[pipeline] No price for {token.symbol}, skipping {log.transaction_hash}"
            )
            return None

        if not self._filter.qualifies(event.kind, valuation):
            self._below_threshold += 1
            logger.debug(
                f"[pipeline] Below threshold: {token.symbol} ${valuation.amount_usd:,.2f} "
                f"({valuation.percent_supply:.4f}%) tx={log.transaction_hash}"
            )
            return None

        tx_id = log.transaction_hash
        if await self._dedup.is_duplicate(tx_id):
            self._duplicates += 1
            logger.debug(f"[pipeline] Duplicate {tx_id}")
            return None

        from_address, to_address = self._parties(event)
        tx = WhaleTransaction(
            id=tx_id,
            token_address=token.token_address,
            token_symbol=token.symbol,
            event_type=event.kind,
            direction=self._classifier.classify(event, token),
            amount_token=valuation.amount_token,
            amount_usd=valuation.amount_usd,
            percent_supply=valuation.percent_supply,
            from_address=from_address,
            to_address=to_address,
            source=event.source,
            block_number=log.block_number,
            log_index=log.log_index,
            timestamp=self._clock.now(),
            swap_details=SwapDetails.from_event(event) if isinstance(event, SwapEvent) else None,
        )

        if not await self._sink.record(tx):
            self._not_persisted += 1
            return None

        self._persisted += 1
        self._dedup.mark_seen(tx_id)
        return tx

    def _watched_token(self, event: DecodedEvent) -> Optional[WatchedToken]:
        if event.kind == EventKind.TRANSFER:
            return self._watchlist.by_token(event.contract_address)
        return self._watchlist.by_pool(event.contract_address)

    @staticmethod
    def _raw_amount(event: DecodedEvent, token: WatchedToken) -> int:
        if isinstance(event, TransferEvent):
            return event.raw_value
        return event.leg(token.pool_token_index)

    @staticmethod
    def _parties(event: DecodedEvent) -> tuple[Optional[str], Optional[str]]:
        if isinstance(event, SwapEvent):
            return event.sender, event.recipient
        return event.from_address, event.to_address

    # --------------------------------------------------------
    # STATS
    # --------------------------------------------------------

    def get_stats(self) -> dict[str, Any]:
        decoder_stats = self._decoder.get_stats()
        sink_stats = self._sink.get_stats()
        return {
            "received": self._received,
            "decoded": self._decoded,
            "dropped": self._dropped,
            "decode_errors": decoder_stats["errors"],
            "zero_amount": self._zero_amount,
            "unpriced": self._unpriced,
            "below_threshold": self._below_threshold,
            "duplicates": self._duplicates + sink_stats["duplicates"],
            "persisted": self._persisted,
            "persist_failures": sink_stats["persist_failures"],
            "notify_failures": sink_stats["notify_failures"],
            "handler_errors": self._handler_errors,
            "in_flight": len(self._tasks),
        }
