"""
Event Decoder Package.

Decodes raw EVM logs into typed Transfer and Swap events.

Quick Start:
    from event_decoder import EventDecoder, RawLog

    decoder = EventDecoder(token_addresses=[token], pool_addresses=[pool])
    event = decoder.try_decode(RawLog.from_rpc(payload))
"""

from .decoder import EventDecoder
from .exceptions import DecodeError
from .models import (
    DecodedEvent,
    EventKind,
    RawLog,
    SwapEvent,
    SwapProtocol,
    TransferEvent,
)
from .signatures import (
    DEFAULT_SIGNATURES,
    EventSignature,
    event_topic,
    subscription_topics,
)

__all__ = [
    "EventDecoder",
    "DecodeError",
    "DecodedEvent",
    "EventKind",
    "RawLog",
    "SwapEvent",
    "SwapProtocol",
    "TransferEvent",
    "DEFAULT_SIGNATURES",
    "EventSignature",
    "event_topic",
    "subscription_topics",
]
