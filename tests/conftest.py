"""
Shared fixtures: addresses, RawLog builders and an in-memory log transport.
"""

import asyncio
import itertools

import pytest
from eth_abi import encode

from event_decoder.models import RawLog
from event_decoder.signatures import (
    TRANSFER,
    UNISWAP_V2_SWAP,
    UNISWAP_V3_SWAP,
    EventSignature,
)
from log_subscription import LogTransport, TransportClosedError, TransportError


TOKEN = "0x" + "a1" * 20
POOL = "0x" + "b2" * 20
WALLET = "0x" + "33" * 20
OTHER_WALLET = "0x" + "44" * 20

_hashes = itertools.count(1)


def address_topic(address: str) -> str:
    return "0x" + "0" * 24 + address[2:].lower()


def tx_hash(n: int) -> str:
    return "0x" + format(n, "064x")


def build_transfer_log(
    value: int,
    from_address: str = WALLET,
    to_address: str = POOL,
    contract: str = TOKEN,
    transaction_hash: str = None,
    log_index: int = 0,
    removed: bool = False,
) -> RawLog:
    return RawLog(
        contract_address=contract,
        topics=(TRANSFER.topic, address_topic(from_address), address_topic(to_address)),
        data="0x" + encode(["uint256"], [value]).hex(),
        transaction_hash=transaction_hash or tx_hash(next(_hashes)),
        block_number=100,
        log_index=log_index,
        removed=removed,
    )


def build_v3_swap_log(
    amount0: int,
    amount1: int,
    signature: EventSignature = UNISWAP_V3_SWAP,
    sender: str = WALLET,
    recipient: str = OTHER_WALLET,
    contract: str = POOL,
    transaction_hash: str = None,
) -> RawLog:
    extra = [2 ** 96, 10 ** 18, -100] + [0] * (len(signature.data_types) - 5)
    data = encode(list(signature.data_types), [amount0, amount1] + extra)
    return RawLog(
        contract_address=contract,
        topics=(signature.topic, address_topic(sender), address_topic(recipient)),
        data="0x" + data.hex(),
        transaction_hash=transaction_hash or tx_hash(next(_hashes)),
        block_number=200,
        log_index=3,
    )


def build_v2_swap_log(
    amounts: tuple,
    signature: EventSignature = UNISWAP_V2_SWAP,
    sender: str = WALLET,
    recipient: str = OTHER_WALLET,
    contract: str = POOL,
) -> RawLog:
    data = encode(list(signature.data_types), list(amounts))
    return RawLog(
        contract_address=contract,
        topics=(signature.topic, address_topic(sender), address_topic(recipient)),
        data="0x" + data.hex(),
        transaction_hash=tx_hash(next(_hashes)),
        block_number=300,
        log_index=1,
    )


@pytest.fixture
def transfer_log():
    return build_transfer_log


@pytest.fixture
def v3_swap_log():
    return build_v3_swap_log


@pytest.fixture
def v2_swap_log():
    return build_v2_swap_log


# ============================================================
# TRANSPORT
# ============================================================

class FakeTransport(LogTransport):
    """In-memory transport; tests push logs and simulate drops."""

    def __init__(self, connect_failures: int = 0):
        self.connect_failures = connect_failures
        self.connects = 0
        self.subscribe_calls = []
        self.unsubscribe_calls = []
        self.active = set()
        self.closes = 0
        self._connected = False
        self._queue = asyncio.Queue()
        self._ids = itertools.count(1)

    @property
    def is_connected(self):
        return self._connected

    async def connect(self):
        self.connects += 1
        if self.connect_failures:
            self.connect_failures -= 1
            raise TransportError("connection refused")
        self._queue = asyncio.Queue()
        self._connected = True
        self.active.clear()

    async def subscribe(self, addresses, topics):
        subscription_id = f"sub-{next(self._ids)}"
        self.subscribe_calls.append(list(addresses))
        self.active.add(subscription_id)
        return subscription_id

    async def unsubscribe(self, subscription_id):
        self.unsubscribe_calls.append(subscription_id)
        was_active = subscription_id in self.active
        self.active.discard(subscription_id)
        return was_active

    async def messages(self):
        queue = self._queue
        while True:
            item = await queue.get()
            if isinstance(item, Exception):
                raise item
            yield item

    async def close(self):
        self.closes += 1
        if self._connected:
            self._connected = False
            self.active.clear()
            self._queue.put_nowait(TransportClosedError("closed"))

    def push(self, log):
        self._queue.put_nowait(log)

    def drop(self):
        self._connected = False
        self.active.clear()
        self._queue.put_nowait(TransportClosedError("closed by peer"))


async def wait_for(predicate, timeout=2.0):
    """Poll until predicate() is true or fail the test."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.01)
