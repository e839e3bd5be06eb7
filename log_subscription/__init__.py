"""
Log Subscription Package.

Long-lived log stream for the watched contracts:
- transport: eth_subscribe over WebSocket
- manager: lifecycle, reconnect and resubscription
- state: lifecycle state machine
"""

from .config import SubscriptionConfig
from .exceptions import SubscriptionRejectedError, TransportClosedError, TransportError
from .manager import LogSubscriptionManager
from .state import (
    InvalidStateTransitionError,
    StateTransitionEvent,
    SubscriptionState,
    SubscriptionStateMachine,
)
from .transport import LogTransport, WebSocketLogTransport

__all__ = [
    "SubscriptionConfig",
    "SubscriptionRejectedError",
    "TransportClosedError",
    "TransportError",
    "LogSubscriptionManager",
    "InvalidStateTransitionError",
    "StateTransitionEvent",
    "SubscriptionState",
    "SubscriptionStateMachine",
    "LogTransport",
    "WebSocketLogTransport",
]
