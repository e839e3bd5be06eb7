"""
Event Decoder.

============================================================
PURPOSE
============================================================
Turns a RawLog into a typed TransferEvent or SwapEvent.

- topic0 selects the layout from the signature registry
- Transfers are only accepted from watched token contracts
- Swaps are only accepted from known pool contracts
- Anything else yields None

Malformed logs raise DecodeError from decode(). try_decode()
catches it, logs it, and returns None so one bad log never
stops the stream.

============================================================
"""

import logging
from typing import Any, Callable, Dict, Iterable, Optional, Tuple

from eth_abi import decode as abi_decode
from eth_abi.exceptions import DecodingError

from .exceptions import DecodeError
from .models import DecodedEvent, EventKind, RawLog, SwapEvent, SwapProtocol, TransferEvent
from .signatures import DEFAULT_SIGNATURES, EventSignature, build_registry


logger = logging.getLogger(__name__)


def _hex_to_bytes(value: str, log: RawLog, what: str) -> bytes:
    text = value[2:] if value.startswith("0x") else value
    try:
        return bytes.fromhex(text)
    except ValueError as e:
        raise DecodeError(
            f"{what} is not valid hex",
            transaction_hash=log.transaction_hash,
            log_index=log.log_index,
            original_error=e,
        ) from e


class EventDecoder:
    """
    Registry-driven log decoder.

    Address sets are replaced wholesale when the watchlist changes.
    """

    def __init__(
        self,
        token_addresses: Iterable[str] = (),
        pool_addresses: Iterable[str] = (),
        signatures: Tuple[EventSignature, ...] = DEFAULT_SIGNATURES,
    ) -> None:
        self._registry = build_registry(signatures)
        self._token_addresses = frozenset(a.lower() for a in token_addresses)
        self._pool_addresses = frozenset(a.lower() for a in pool_addresses)

        self._handlers: Dict[EventKind, Callable[[RawLog, EventSignature], DecodedEvent]] = {
            EventKind.TRANSFER: self._decode_transfer,
            EventKind.SWAP: self._decode_swap,
        }

        self._decoded = 0
        self._ignored = 0
        self._errors = 0

    # --------------------------------------------------------
    # ADDRESS SETS
    # --------------------------------------------------------

    def update_addresses(
        self,
        token_addresses: Iterable[str],
        pool_addresses: Iterable[str],
    ) -> None:
        self._token_addresses = frozenset(a.lower() for a in token_addresses)
        self._pool_addresses = frozenset(a.lower() for a in pool_addresses)

    @property
    def topics(self) -> list[str]:
        return list(self._registry)

    # --------------------------------------------------------
    # DECODING
    # --------------------------------------------------------

    def decode(self, log: RawLog) -> Optional[DecodedEvent]:
        """
        Decode a log.

        Returns:
            The typed event, or None for unknown topics and
            contracts that are not watched

        Raises:
            DecodeError: If the log matches a layout but its
                topics or data are malformed
        """
        signature = self._registry.get(log.topic0)
        if signature is None:
            return None

        contract = log.contract_address.lower()
        if signature.kind == EventKind.TRANSFER and contract not in self._token_addresses:
            return None
        if signature.kind == EventKind.SWAP and contract not in self._pool_addresses:
            return None

        if len(log.topics) != 1 + signature.indexed_count:
            raise DecodeError(
                f"{signature.name} expects {1 + signature.indexed_count} topics, "
                f"got {len(log.topics)}",
                transaction_hash=log.transaction_hash,
                log_index=log.log_index,
                topic=log.topic0,
            )

        return self._handlers[signature.kind](log, signature)

    def try_decode(self, log: RawLog) -> Optional[DecodedEvent]:
        """Decode, logging and swallowing per-log failures."""
        try:
            event = self.decode(log)
        except DecodeError as e:
            self._errors += 1
            logger.warning(f"[decoder] Dropping malformed log: {e}")
            return None

        if event is None:
            self._ignored += 1
            logger.debug(
                f"[decoder] Ignoring log {log.transaction_hash}:{log.log_index} "
                f"from {log.contract_address}"
            )
            return None

        self._decoded += 1
        return event

    def _decode_data(self, log: RawLog, signature: EventSignature) -> Tuple[Any, ...]:
        data = _hex_to_bytes(log.data, log, "data")
        try:
            return abi_decode(list(signature.data_types), data)
        except (DecodingError, ValueError) as e:
            raise DecodeError(
                f"{signature.name} data does not match {signature.data_types}",
                transaction_hash=log.transaction_hash,
                log_index=log.log_index,
                topic=log.topic0,
                original_error=e,
            ) from e

    def _topic_address(self, log: RawLog, position: int) -> str:
        raw = _hex_to_bytes(log.topics[position], log, f"topic[{position}]")
        try:
            (address,) = abi_decode(["address"], raw)
        except (DecodingError, ValueError) as e:
            raise DecodeError(
                f"topic[{position}] is not an address",
                transaction_hash=log.transaction_hash,
                log_index=log.log_index,
                topic=log.topic0,
                original_error=e,
            ) from e
        return address.lower()

    def _decode_transfer(self, log: RawLog, signature: EventSignature) -> TransferEvent:
        (value,) = self._decode_data(log, signature)
        return TransferEvent(
            log=log,
            from_address=self._topic_address(log, 1),
            to_address=self._topic_address(log, 2),
            raw_value=value,
        )

    def _decode_swap(self, log: RawLog, signature: EventSignature) -> SwapEvent:
        values = self._decode_data(log, signature)

        if signature.protocol in (SwapProtocol.UNISWAP_V3, SwapProtocol.PANCAKESWAP_V3):
            amount0, amount1 = values[0], values[1]
        else:
            # V2 layouts report in/out separately; net them into signed legs
            amount0_in, amount1_in, amount0_out, amount1_out = values
            amount0 = amount0_in - amount0_out
            amount1 = amount1_in - amount1_out

        return SwapEvent(
            log=log,
            sender=self._topic_address(log, 1),
            recipient=self._topic_address(log, 2),
            amount0=amount0,
            amount1=amount1,
            protocol=signature.protocol,
        )

    def get_stats(self) -> dict[str, Any]:
        return {
            "decoded": self._decoded,
            "ignored": self._ignored,
            "errors": self._errors,
            "tokens": len(self._token_addresses),
            "pools": len(self._pool_addresses),
        }
