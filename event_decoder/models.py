"""
Event Decoder Models.

============================================================
TYPES
============================================================
- RawLog: an undecoded EVM log as delivered by the node
- TransferEvent: ERC-20 Transfer
- SwapEvent: AMM pool swap, normalised to signed legs
- DecodedEvent: Union of the two

Swap legs use one sign convention for every pool family:
positive = the amount flowed INTO the pool,
negative = the amount flowed OUT of the pool.

============================================================
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Tuple, Union

from .exceptions import DecodeError


class EventKind(Enum):
    """Kind of decoded event."""

    TRANSFER = "transfer"
    SWAP = "swap"


class SwapProtocol(Enum):
    """Pool families whose Swap event layouts are understood."""

    UNISWAP_V3 = "uniswap_v3"
    PANCAKESWAP_V3 = "pancakeswap_v3"
    UNISWAP_V2 = "uniswap_v2"
    SOLIDLY_V2 = "solidly_v2"


def _parse_quantity(value: Any, field_name: str) -> int:
    """Parse a JSON-RPC quantity (hex string or int)."""
    if value is None:
        return 0
    if isinstance(value, int):
        return value
    try:
        return int(value, 16) if str(value).startswith("0x") else int(value)
    except (TypeError, ValueError) as e:
        raise DecodeError(f"Invalid {field_name}: {value!r}", original_error=e) from e


@dataclass(frozen=True)
class RawLog:
    """Undecoded log entry."""

    contract_address: str
    topics: Tuple[str, ...]
    data: str
    transaction_hash: str
    block_number: int
    log_index: int
    removed: bool = False

    @property
    def topic0(self) -> str:
        return self.topics[0] if self.topics else ""

    @classmethod
    def from_rpc(cls, payload: dict[str, Any]) -> "RawLog":
        """
        Build from an `eth_subscription` / `eth_getLogs` log object.

        Raises:
            DecodeError: If required fields are missing
        """
        try:
            address = payload["address"]
            tx_hash = payload["transactionHash"]
        except (KeyError, TypeError) as e:
            raise DecodeError(f"Log payload missing field: {e}", original_error=e) from e

        return cls(
            contract_address=str(address).lower(),
            topics=tuple(str(t).lower() for t in payload.get("topics") or ()),
            data=payload.get("data") or "0x",
            transaction_hash=str(tx_hash).lower(),
            block_number=_parse_quantity(payload.get("blockNumber"), "blockNumber"),
            log_index=_parse_quantity(payload.get("logIndex"), "logIndex"),
            removed=bool(payload.get("removed", False)),
        )


@dataclass(frozen=True)
class TransferEvent:
    """ERC-20 Transfer(from, to, value)."""

    log: RawLog
    from_address: str
    to_address: str
    raw_value: int

    @property
    def kind(self) -> EventKind:
        return EventKind.TRANSFER

    @property
    def contract_address(self) -> str:
        return self.log.contract_address

    @property
    def source(self) -> str:
        return EventKind.TRANSFER.value


@dataclass(frozen=True)
class SwapEvent:
    """Pool swap with signed legs for token0 and token1."""

    log: RawLog
    sender: str
    recipient: str
    amount0: int
    amount1: int
    protocol: SwapProtocol

    @property
    def kind(self) -> EventKind:
        return EventKind.SWAP

    @property
    def contract_address(self) -> str:
        return self.log.contract_address

    @property
    def source(self) -> str:
        return self.protocol.value

    def leg(self, token_index: int) -> int:
        """Signed amount of token0 (index 0) or token1 (index 1)."""
        if token_index not in (0, 1):
            raise ValueError(f"token_index must be 0 or 1, got {token_index}")
        return self.amount0 if token_index == 0 else self.amount1


DecodedEvent = Union[TransferEvent, SwapEvent]
