"""
Event Signatures - topic0 registry.

Every supported log layout is listed once here. The decoder and
the log subscription filter are both built from this table, so a
layout that is not registered is neither subscribed to nor decoded.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from web3 import Web3

from .models import EventKind, SwapProtocol


def event_topic(signature: str) -> str:
    """Keccak-256 topic hash of a canonical event signature."""
    return Web3.to_hex(Web3.keccak(text=signature)).lower()


@dataclass(frozen=True)
class EventSignature:
    """A registered event layout."""

    name: str
    signature: str
    kind: EventKind
    indexed_count: int
    data_types: Tuple[str, ...]
    protocol: Optional[SwapProtocol] = None

    @property
    def topic(self) -> str:
        return event_topic(self.signature)


TRANSFER = EventSignature(
    name="erc20_transfer",
    signature="Transfer(address,address,uint256)",
    kind=EventKind.TRANSFER,
    indexed_count=2,
    data_types=("uint256",),
)

# Uniswap V3 and forks (Aerodrome Slipstream)
UNISWAP_V3_SWAP = EventSignature(
    name="uniswap_v3_swap",
    signature="Swap(address,address,int256,int256,uint160,uint128,int24)",
    kind=EventKind.SWAP,
    indexed_count=2,
    data_types=("int256", "int256", "uint160", "uint128", "int24"),
    protocol=SwapProtocol.UNISWAP_V3,
)

# PancakeSwap V3 appends protocol fee fields
PANCAKESWAP_V3_SWAP = EventSignature(
    name="pancakeswap_v3_swap",
    signature="Swap(address,address,int256,int256,uint160,uint128,int24,uint128,uint128)",
    kind=EventKind.SWAP,
    indexed_count=2,
    data_types=("int256", "int256", "uint160", "uint128", "int24", "uint128", "uint128"),
    protocol=SwapProtocol.PANCAKESWAP_V3,
)

# Uniswap V2 pairs: Swap(sender, amount0In, amount1In, amount0Out, amount1Out, to)
UNISWAP_V2_SWAP = EventSignature(
    name="uniswap_v2_swap",
    signature="Swap(address,uint256,uint256,uint256,uint256,address)",
    kind=EventKind.SWAP,
    indexed_count=2,
    data_types=("uint256", "uint256", "uint256", "uint256"),
    protocol=SwapProtocol.UNISWAP_V2,
)

# Aerodrome / Velodrome V2 pools: Swap(sender, to, amount0In, amount1In, amount0Out, amount1Out)
SOLIDLY_V2_SWAP = EventSignature(
    name="solidly_v2_swap",
    signature="Swap(address,address,uint256,uint256,uint256,uint256)",
    kind=EventKind.SWAP,
    indexed_count=2,
    data_types=("uint256", "uint256", "uint256", "uint256"),
    protocol=SwapProtocol.SOLIDLY_V2,
)


DEFAULT_SIGNATURES: Tuple[EventSignature, ...] = (
    TRANSFER,
    UNISWAP_V3_SWAP,
    PANCAKESWAP_V3_SWAP,
    UNISWAP_V2_SWAP,
    SOLIDLY_V2_SWAP,
)


def build_registry(
    signatures: Tuple[EventSignature, ...] = DEFAULT_SIGNATURES,
) -> Dict[str, EventSignature]:
    """Map topic0 -> signature. Duplicate topics are a programming error."""
    registry: Dict[str, EventSignature] = {}
    for sig in signatures:
        topic = sig.topic
        if topic in registry:
            raise ValueError(f"Duplicate event topic for {sig.signature}")
        registry[topic] = sig
    return registry


def subscription_topics(
    signatures: Tuple[EventSignature, ...] = DEFAULT_SIGNATURES,
) -> List[str]:
    """topic0 values for a log filter (OR-ed in position 0)."""
    return [sig.topic for sig in signatures]
