"""
Persistence & Notification Sink.

============================================================
PURPOSE
============================================================
Durable output of the pipeline.

- persist(): one insert-if-absent keyed by transaction hash
- notify(): best-effort companion notification, only after a
  successful persist

A persistence failure is logged and the event dropped
(at-most-once). A notification failure is logged and ignored.
Blocking database work runs in a worker thread.

============================================================
"""

import asyncio
import logging
from typing import Any, Optional

from core.clock import ClockFactory, ClockProtocol
from storage.database import Database, DatabasePersistenceError
from storage.models.whale import NotificationRecord
from storage.repositories.exceptions import DuplicateRecordError, RepositoryException
from storage.repositories.whale_repo import NotificationRepository, WhaleTransactionRepository
from whale_detection.models import WhaleTransaction


logger = logging.getLogger(__name__)


def format_notification(tx: WhaleTransaction) -> str:
    """Human readable alert line, e.g. 'Whale Sell: 3,000.00 TKN ($6,000.00) via transfer'."""
    return (
        f"Whale {tx.direction.value.title()}: "
        f"{tx.amount_token:,.2f} {tx.token_symbol} "
        f"(${tx.amount_usd:,.2f}) via {tx.source}"
    )


class WhaleSink:
    """Writes whale transactions and their notifications."""

    def __init__(self, database: Database, clock: Optional[ClockProtocol] = None) -> None:
        self._database = database
        self._clock = clock or ClockFactory.get_clock()

        self._persisted = 0
        self._duplicates = 0
        self._persist_failures = 0
        self._notified = 0
        self._notify_failures = 0

    # --------------------------------------------------------
    # READS
    # --------------------------------------------------------

    async def exists(self, tx_id: str) -> bool:
        return await asyncio.to_thread(self._exists_sync, tx_id)

    def _exists_sync(self, tx_id: str) -> bool:
        with self._database.session_scope() as session:
            return WhaleTransactionRepository(session).exists(tx_id)

    # --------------------------------------------------------
    # WRITES
    # --------------------------------------------------------

    async def persist(self, tx: WhaleTransaction) -> bool:
        """
        Store a whale transaction once.

        Returns:
            True if a new row was written; False for duplicates and
            for failures (which are logged and dropped)
        """
        try:
            await asyncio.to_thread(self._persist_sync, tx)
        except DuplicateRecordError:
            self._duplicates += 1
            logger.info(f"[sink] Skipping duplicate transaction {tx.id}")
            return False
        except (RepositoryException, DatabasePersistenceError) as e:
            self._persist_failures += 1
            logger.error(f"[sink] Failed to persist {tx.id}, dropping: {e}")
            return False

        self._persisted += 1
        logger.info(
            f"[sink] Stored whale {tx.direction.value} {tx.token_symbol} "
            f"${tx.amount_usd:,.2f} ({tx.percent_supply:.4f}% supply) tx={tx.id}"
        )
        return True

    def _persist_sync(self, tx: WhaleTransaction) -> None:
        with self._database.session_scope() as session:
            WhaleTransactionRepository(session).insert_if_absent(tx)

    async def notify(self, tx: WhaleTransaction) -> bool:
        """Append a notification. Failures are logged and ignored."""
        try:
            await asyncio.to_thread(self._notify_sync, tx)
        except (RepositoryException, DatabasePersistenceError) as e:
            self._notify_failures += 1
            logger.warning(f"[sink] Notification for {tx.id} failed: {e}")
            return False

        self._notified += 1
        return True

    def _notify_sync(self, tx: WhaleTransaction) -> None:
        record = NotificationRecord(
            transaction_id=tx.id,
            notification_type=f"whale_{tx.event_type.value}",
            direction=tx.direction.value,
            token_symbol=tx.token_symbol,
            amount_usd=tx.amount_usd,
            message=format_notification(tx),
        )
        with self._database.session_scope() as session:
            NotificationRepository(session).append(record)

    async def record(self, tx: WhaleTransaction) -> bool:
        """persist() then, if it wrote a row, notify()."""
        persisted = await self.persist(tx)
        if persisted:
            await self.notify(tx)
        return persisted

    def get_stats(self) -> dict[str, Any]:
        return {
            "persisted": self._persisted,
            "duplicates": self._duplicates,
            "persist_failures": self._persist_failures,
            "notified": self._notified,
            "notify_failures": self._notify_failures,
        }
