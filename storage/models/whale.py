"""
Whale Domain ORM Models.

============================================================
DATA LIFECYCLE ROLE
============================================================
- WhaleTransactionRecord: one row per qualifying transaction
  hash. Insert-if-absent, never updated.
- NotificationRecord: companion alert rows. Append-only and not
  deduplicated.

============================================================
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from storage.models.base import Base, CreatedAtMixin


class WhaleTransactionRecord(Base, CreatedAtMixin):
    """A persisted whale transaction keyed by transaction hash."""

    __tablename__ = "whale_transactions"

    id: Mapped[str] = mapped_column(
        String(66),
        primary_key=True,
        comment="Transaction hash (dedup key)"
    )

    token_address: Mapped[str] = mapped_column(String(42), nullable=False)
    token_symbol: Mapped[str] = mapped_column(String(32), nullable=False)

    event_type: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        comment="transfer | swap"
    )

    direction: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        comment="buy | sell | transfer"
    )

    amount_token: Mapped[Decimal] = mapped_column(Numeric(78, 18), nullable=False)
    amount_usd: Mapped[Decimal] = mapped_column(Numeric(38, 8), nullable=False)
    percent_supply: Mapped[Decimal] = mapped_column(Numeric(38, 18), nullable=False)

    from_address: Mapped[Optional[str]] = mapped_column(String(42), nullable=True)
    to_address: Mapped[Optional[str]] = mapped_column(String(42), nullable=True)

    source: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        comment="transfer or the pool protocol that emitted the swap"
    )

    block_number: Mapped[int] = mapped_column(BigInteger, nullable=False)
    log_index: Mapped[int] = mapped_column(Integer, nullable=False)

    # Swap legs, raw uint256 as decimal strings; NULL for transfers
    swap_amount_in_raw: Mapped[Optional[str]] = mapped_column(String(80), nullable=True)
    swap_amount_out_raw: Mapped[Optional[str]] = mapped_column(String(80), nullable=True)
    swap_token_in_index: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    swap_token_out_index: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        comment="When the monitor observed the event"
    )

    __table_args__ = (
        Index("ix_whale_transactions_token_occurred", "token_address", "occurred_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<WhaleTransactionRecord(id={self.id}, token={self.token_symbol}, "
            f"direction={self.direction}, usd={self.amount_usd})>"
        )


class NotificationRecord(Base, CreatedAtMixin):
    """Alert row written after a whale transaction is stored."""

    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    transaction_id: Mapped[str] = mapped_column(
        String(66),
        ForeignKey("whale_transactions.id"),
        nullable=False,
        index=True,
    )

    notification_type: Mapped[str] = mapped_column(String(32), nullable=False)
    direction: Mapped[str] = mapped_column(String(16), nullable=False)
    token_symbol: Mapped[str] = mapped_column(String(32), nullable=False)
    amount_usd: Mapped[Decimal] = mapped_column(Numeric(38, 8), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)

    def __repr__(self) -> str:
        return f"<NotificationRecord(id={self.id}, tx={self.transaction_id})>"
