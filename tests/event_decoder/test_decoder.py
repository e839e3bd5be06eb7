"""
Event Decoder Tests.

============================================================
PURPOSE
============================================================
TEST CATEGORIES:
- Registry: topic hashes and subscription filter
- Transfer decoding
- Swap decoding across pool families
- Address scoping (watched tokens / known pools)
- Malformed input
============================================================
"""

import pytest

from conftest import OTHER_WALLET, POOL, TOKEN, WALLET, address_topic
from event_decoder import (
    DecodeError,
    EventDecoder,
    EventKind,
    RawLog,
    SwapEvent,
    SwapProtocol,
    TransferEvent,
    event_topic,
    subscription_topics,
)
from event_decoder.signatures import (
    PANCAKESWAP_V3_SWAP,
    SOLIDLY_V2_SWAP,
    TRANSFER,
    UNISWAP_V2_SWAP,
    build_registry,
)


@pytest.fixture
def decoder():
    return EventDecoder(token_addresses=[TOKEN], pool_addresses=[POOL])


# ============================================================
# REGISTRY TESTS
# ============================================================

class TestSignatureRegistry:
    """Tests for topic0 registration."""

    def test_transfer_topic_is_standard_hash(self):
        assert TRANSFER.topic == (
            "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"
        )

    def test_uniswap_v3_swap_topic(self):
        assert event_topic("Swap(address,address,int256,int256,uint160,uint128,int24)") == (
            "0xc42079f94a6350d7e6235f29174924f928cc2ac818eb64fed8004e115fbcca67"
        )

    def test_uniswap_v2_swap_topic(self):
        assert UNISWAP_V2_SWAP.topic == (
            "0xd78ad95fa46c994b6551d0da85fc275fe613ce37657fb8d5e3d130840159d822"
        )

    def test_subscription_topics_cover_registry(self):
        topics = subscription_topics()

        assert len(topics) == 5
        assert set(topics) == set(build_registry())

    def test_duplicate_topic_rejected(self):
        with pytest.raises(ValueError, match="Duplicate"):
            build_registry((TRANSFER, TRANSFER))


# ============================================================
# TRANSFER TESTS
# ============================================================

class TestTransferDecoding:
    """Tests for ERC-20 Transfer logs."""

    def test_decodes_transfer(self, decoder, transfer_log):
        log = transfer_log(3_000 * 10 ** 18, from_address=WALLET, to_address=POOL)

        event = decoder.decode(log)

        assert isinstance(event, TransferEvent)
        assert event.kind == EventKind.TRANSFER
        assert event.from_address == WALLET
        assert event.to_address == POOL
        assert event.raw_value == 3_000 * 10 ** 18
        assert event.source == "transfer"

    def test_transfer_from_unwatched_contract_ignored(self, decoder, transfer_log):
        log = transfer_log(1, contract=OTHER_WALLET)

        assert decoder.decode(log) is None

    def test_transfer_contract_compared_case_insensitively(self, transfer_log):
        decoder = EventDecoder(token_addresses=[TOKEN.upper().replace("0X", "0x")])

        assert decoder.decode(transfer_log(5)) is not None

    def test_unknown_topic_ignored(self, decoder):
        log = RawLog(
            contract_address=TOKEN,
            topics=(event_topic("Approval(address,address,uint256)"),),
            data="0x",
            transaction_hash="0xabc",
            block_number=1,
            log_index=0,
        )

        assert decoder.decode(log) is None


# ============================================================
# SWAP TESTS
# ============================================================

class TestSwapDecoding:
    """Tests for the pool Swap layouts."""

    def test_uniswap_v3_signed_legs(self, decoder, v3_swap_log):
        event = decoder.decode(v3_swap_log(5 * 10 ** 18, -12_000 * 10 ** 6))

        assert isinstance(event, SwapEvent)
        assert event.protocol == SwapProtocol.UNISWAP_V3
        assert event.amount0 == 5 * 10 ** 18
        assert event.amount1 == -12_000 * 10 ** 6
        assert event.sender == WALLET
        assert event.recipient == OTHER_WALLET

    def test_pancakeswap_v3_layout(self, decoder, v3_swap_log):
        event = decoder.decode(v3_swap_log(-7, 9, signature=PANCAKESWAP_V3_SWAP))

        assert event.protocol == SwapProtocol.PANCAKESWAP_V3
        assert (event.amount0, event.amount1) == (-7, 9)
        assert event.source == "pancakeswap_v3"

    def test_uniswap_v2_legs_are_netted(self, decoder, v2_swap_log):
        # 100 token0 in, 40 token1 out
        event = decoder.decode(v2_swap_log((100, 0, 0, 40)))

        assert event.protocol == SwapProtocol.UNISWAP_V2
        assert event.amount0 == 100
        assert event.amount1 == -40

    def test_solidly_v2_legs_are_netted(self, decoder, v2_swap_log):
        event = decoder.decode(v2_swap_log((0, 55, 20, 0), signature=SOLIDLY_V2_SWAP))

        assert event.protocol == SwapProtocol.SOLIDLY_V2
        assert event.leg(0) == -20
        assert event.leg(1) == 55

    def test_swap_from_unknown_pool_ignored(self, decoder, v3_swap_log):
        assert decoder.decode(v3_swap_log(1, -1, contract=OTHER_WALLET)) is None

    def test_leg_index_validated(self, decoder, v3_swap_log):
        event = decoder.decode(v3_swap_log(1, -1))

        with pytest.raises(ValueError):
            event.leg(2)

    def test_update_addresses(self, v3_swap_log):
        decoder = EventDecoder()
        log = v3_swap_log(1, -1)
        assert decoder.decode(log) is None

        decoder.update_addresses([TOKEN], [POOL])

        assert decoder.decode(log) is not None


# ============================================================
# MALFORMED INPUT TESTS
# ============================================================

class TestMalformedLogs:
    """Tests for DecodeError handling."""

    def test_wrong_topic_count_raises(self, decoder):
        log = RawLog(
            contract_address=TOKEN,
            topics=(TRANSFER.topic, address_topic(WALLET)),
            data="0x" + "00" * 32,
            transaction_hash="0xdead",
            block_number=1,
            log_index=2,
        )

        with pytest.raises(DecodeError) as exc_info:
            decoder.decode(log)

        assert exc_info.value.transaction_hash == "0xdead"
        assert exc_info.value.log_index == 2

    def test_short_data_raises(self, decoder):
        log = RawLog(
            contract_address=TOKEN,
            topics=(TRANSFER.topic, address_topic(WALLET), address_topic(POOL)),
            data="0x1234",
            transaction_hash="0xbeef",
            block_number=1,
            log_index=0,
        )

        with pytest.raises(DecodeError):
            decoder.decode(log)

    def test_non_hex_data_raises(self, decoder):
        log = RawLog(
            contract_address=TOKEN,
            topics=(TRANSFER.topic, address_topic(WALLET), address_topic(POOL)),
            data="0xzz",
            transaction_hash="0xbeef",
            block_number=1,
            log_index=0,
        )

        with pytest.raises(DecodeError):
            decoder.decode(log)

    def test_try_decode_swallows_and_counts(self, decoder, transfer_log):
        bad = RawLog(
            contract_address=TOKEN,
            topics=(TRANSFER.topic,),
            data="0x",
            transaction_hash="0x01",
            block_number=1,
            log_index=0,
        )

        assert decoder.try_decode(bad) is None
        assert decoder.try_decode(transfer_log(10)) is not None

        stats = decoder.get_stats()
        assert stats["errors"] == 1
        assert stats["decoded"] == 1

    def test_decode_error_to_dict(self):
        error = DecodeError("bad", transaction_hash="0x1", log_index=4)

        data = error.to_dict()

        assert data["error_type"] == "DecodeError"
        assert data["log_index"] == 4


# ============================================================
# RAW LOG PARSING TESTS
# ============================================================

class TestRawLogFromRpc:
    """Tests for RawLog.from_rpc."""

    def test_parses_notification_payload(self):
        log = RawLog.from_rpc({
            "address": TOKEN.upper().replace("0X", "0x"),
            "topics": [TRANSFER.topic],
            "data": "0x",
            "transactionHash": "0xABC",
            "blockNumber": "0x10",
            "logIndex": "0x2",
            "removed": False,
        })

        assert log.contract_address == TOKEN
        assert log.transaction_hash == "0xabc"
        assert log.block_number == 16
        assert log.log_index == 2
        assert log.topic0 == TRANSFER.topic

    def test_missing_hash_raises(self):
        with pytest.raises(DecodeError):
            RawLog.from_rpc({"address": TOKEN, "topics": []})

    def test_removed_flag(self):
        log = RawLog.from_rpc({
            "address": TOKEN,
            "transactionHash": "0x1",
            "removed": True,
        })

        assert log.removed
