"""
Whale Repositories.

- WhaleTransactionRepository: insert-if-absent keyed by tx hash
- NotificationRepository: append-only alerts
"""

from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storage.models.whale import NotificationRecord, WhaleTransactionRecord
from storage.repositories.base import BaseRepository
from storage.repositories.exceptions import DuplicateRecordError
from whale_detection.models import WhaleTransaction


class WhaleTransactionRepository(BaseRepository[WhaleTransactionRecord]):
    """Repository for whale_transactions."""

    def __init__(self, session: Session):
        super().__init__(session, WhaleTransactionRecord, "WhaleTransactionRepository")

    def exists(self, tx_id: str) -> bool:
        try:
            stmt = select(WhaleTransactionRecord.id).where(WhaleTransactionRecord.id == tx_id)
            return self._session.execute(stmt).first() is not None
        except SQLAlchemyError as e:
            raise self._translate(e, "exists", {"id": tx_id}) from e

    def get(self, tx_id: str) -> Optional[WhaleTransactionRecord]:
        return self._get_by_id(tx_id)

    def insert_if_absent(self, tx: WhaleTransaction) -> WhaleTransactionRecord:
        """
        Insert a whale transaction.

        Raises:
            DuplicateRecordError: If a row with this id already exists,
                either found up front or rejected by the primary key
        """
        if self.exists(tx.id):
            raise DuplicateRecordError(self._repository_name, "id", tx.id)

        swap = tx.swap_details
        record = WhaleTransactionRecord(
            id=tx.id,
            token_address=tx.token_address,
            token_symbol=tx.token_symbol,
            event_type=tx.event_type.value,
            direction=tx.direction.value,
            amount_token=tx.amount_token,
            amount_usd=tx.amount_usd,
            percent_supply=tx.percent_supply,
            from_address=tx.from_address,
            to_address=tx.to_address,
            source=tx.source,
            block_number=tx.block_number,
            log_index=tx.log_index,
            occurred_at=tx.timestamp,
            swap_amount_in_raw=str(swap.amount_in_raw) if swap else None,
            swap_amount_out_raw=str(swap.amount_out_raw) if swap else None,
            swap_token_in_index=swap.token_in_index if swap else None,
            swap_token_out_index=swap.token_out_index if swap else None,
        )
        return self._add(record, {"field": "id", "value": tx.id})

    def count(self) -> int:
        return self._count()

    def list_recent(self, limit: int = 50) -> List[WhaleTransactionRecord]:
        try:
            stmt = (
                select(WhaleTransactionRecord)
                .order_by(WhaleTransactionRecord.occurred_at.desc())
                .limit(limit)
            )
            return list(self._session.execute(stmt).scalars())
        except SQLAlchemyError as e:
            raise self._translate(e, "list_recent") from e


class NotificationRepository(BaseRepository[NotificationRecord]):
    """Repository for notifications. Rows are only ever appended."""

    def __init__(self, session: Session):
        super().__init__(session, NotificationRecord, "NotificationRepository")

    def append(self, record: NotificationRecord) -> NotificationRecord:
        return self._add(record)

    def list_for_transaction(self, tx_id: str) -> List[NotificationRecord]:
        try:
            stmt = (
                select(NotificationRecord)
                .where(NotificationRecord.transaction_id == tx_id)
                .order_by(NotificationRecord.id)
            )
            return list(self._session.execute(stmt).scalars())
        except SQLAlchemyError as e:
            raise self._translate(e, "list_for_transaction", {"transaction_id": tx_id}) from e

    def count(self) -> int:
        return self._count()
