"""
Storage and Sink Tests.

============================================================
PURPOSE
============================================================
TEST CATEGORIES:
- Repository insert-if-absent and notification append
- Sink persist / notify semantics
- Failure handling (logged and dropped, never raised)
============================================================
"""

from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import patch

import pytest

from event_decoder.models import EventKind
from storage import Database, WhaleSink, format_notification
from storage.models import NotificationRecord, WhaleTransactionRecord
from storage.repositories import (
    DuplicateRecordError,
    NotificationRepository,
    QueryError,
    WhaleTransactionRepository,
)
from whale_detection.models import Direction, WhaleTransaction


@pytest.fixture
def database():
    db = Database("sqlite:///:memory:")
    db.create_all()
    yield db
    db.dispose()


@pytest.fixture
def sink(database):
    return WhaleSink(database)


def make_tx(tx_id="0x" + "ab" * 32, **overrides):
    values = dict(
        id=tx_id,
        token_address="0x" + "a1" * 20,
        token_symbol="TKN",
        event_type=EventKind.TRANSFER,
        direction=Direction.SELL,
        amount_token=Decimal("3000"),
        amount_usd=Decimal("6000"),
        percent_supply=Decimal("0.3"),
        from_address="0x" + "33" * 20,
        to_address="0x" + "b2" * 20,
        source="transfer",
        block_number=100,
        log_index=0,
        timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )
    values.update(overrides)
    return WhaleTransaction(**values)


# ============================================================
# REPOSITORY TESTS
# ============================================================

class TestWhaleTransactionRepository:
    """Tests for insert-if-absent."""

    def test_insert_and_exists(self, database):
        tx = make_tx()

        with database.session_scope() as session:
            WhaleTransactionRepository(session).insert_if_absent(tx)

        with database.session_scope() as session:
            repo = WhaleTransactionRepository(session)
            assert repo.exists(tx.id)
            assert repo.count() == 1
            record = repo.get(tx.id)
            assert record.direction == "sell"
            assert record.event_type == "transfer"

    def test_second_insert_is_duplicate(self, database):
        tx = make_tx()

        with database.session_scope() as session:
            WhaleTransactionRepository(session).insert_if_absent(tx)

        with pytest.raises(DuplicateRecordError):
            with database.session_scope() as session:
                WhaleTransactionRepository(session).insert_if_absent(tx)

        with database.session_scope() as session:
            assert WhaleTransactionRepository(session).count() == 1

    def test_list_recent_orders_newest_first(self, database):
        older = make_tx("0x01", timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc))
        newer = make_tx("0x02", timestamp=datetime(2024, 1, 2, tzinfo=timezone.utc))

        with database.session_scope() as session:
            repo = WhaleTransactionRepository(session)
            repo.insert_if_absent(older)
            repo.insert_if_absent(newer)

        with database.session_scope() as session:
            ids = [r.id for r in WhaleTransactionRepository(session).list_recent()]

        assert ids == ["0x02", "0x01"]


# ============================================================
# SINK TESTS
# ============================================================

class TestWhaleSink:
    """Tests for persist and notify."""

    def test_notification_message(self):
        assert format_notification(make_tx()) == (
            "Whale Sell: 3,000.00 TKN ($6,000.00) via transfer"
        )

    @pytest.mark.asyncio
    async def test_persist_once(self, sink):
        tx = make_tx()

        assert await sink.persist(tx)
        assert not await sink.persist(tx)

        assert await sink.exists(tx.id)
        stats = sink.get_stats()
        assert stats["persisted"] == 1
        assert stats["duplicates"] == 1

    @pytest.mark.asyncio
    async def test_record_writes_notification(self, sink, database):
        tx = make_tx()

        assert await sink.record(tx)

        with database.session_scope() as session:
            notifications = NotificationRepository(session).list_for_transaction(tx.id)
            assert len(notifications) == 1
            assert notifications[0].notification_type == "whale_transfer"
            assert notifications[0].message.startswith("Whale Sell")

    @pytest.mark.asyncio
    async def test_duplicate_record_does_not_notify_again(self, sink, database):
        tx = make_tx()

        await sink.record(tx)
        await sink.record(tx)

        with database.session_scope() as session:
            assert NotificationRepository(session).count() == 1

    @pytest.mark.asyncio
    async def test_notify_failure_is_logged_and_ignored(self, sink):
        # no whale row, so the foreign key rejects the notification
        orphan = make_tx("0xorphan")

        assert not await sink.notify(orphan)
        assert sink.get_stats()["notify_failures"] == 1

    @pytest.mark.asyncio
    async def test_persist_failure_drops_event(self, sink, database):
        error = QueryError("WhaleTransactionRepository", "add", "disk I/O error")

        with patch.object(WhaleTransactionRepository, "insert_if_absent", side_effect=error):
            assert not await sink.persist(make_tx())

        assert sink.get_stats()["persist_failures"] == 1
        with database.session_scope() as session:
            assert session.query(WhaleTransactionRecord).count() == 0

    @pytest.mark.asyncio
    async def test_notify_runs_after_persist_only(self, sink, database):
        error = QueryError("WhaleTransactionRepository", "add", "disk I/O error")

        with patch.object(WhaleTransactionRepository, "insert_if_absent", side_effect=error):
            assert not await sink.record(make_tx())

        with database.session_scope() as session:
            assert session.query(NotificationRecord).count() == 0
