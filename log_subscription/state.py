"""
Log Subscription - Lifecycle State Machine.

============================================================
STATE MACHINE
============================================================

    STOPPED
       │ start()
       ▼
    STARTING ──────────────┐
       │ subscribed        │ connect failed
       ▼                   ▼
    RUNNING ◄──────► RECONNECTING
       │  stream dropped /  │
       │  resubscribed      │
       ▼                    │
    STOPPING ◄──────────────┘  stop() from any live state
       │
       ▼
    STOPPED

INVARIANTS:
- Only listed transitions are legal
- All transitions are logged and kept in history

============================================================
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Set


logger = logging.getLogger(__name__)


class SubscriptionState(Enum):
    """Lifecycle states of the subscription manager."""

    STOPPED = "STOPPED"
    STARTING = "STARTING"
    RUNNING = "RUNNING"
    RECONNECTING = "RECONNECTING"
    STOPPING = "STOPPING"

    @property
    def is_live(self) -> bool:
        return self in (
            SubscriptionState.STARTING,
            SubscriptionState.RUNNING,
            SubscriptionState.RECONNECTING,
        )


VALID_TRANSITIONS: Dict[SubscriptionState, Set[SubscriptionState]] = {
    SubscriptionState.STOPPED: {
        SubscriptionState.STARTING,
    },
    SubscriptionState.STARTING: {
        SubscriptionState.RUNNING,
        SubscriptionState.RECONNECTING,
        SubscriptionState.STOPPING,
    },
    SubscriptionState.RUNNING: {
        SubscriptionState.RECONNECTING,
        SubscriptionState.STOPPING,
    },
    SubscriptionState.RECONNECTING: {
        SubscriptionState.RUNNING,
        SubscriptionState.STOPPING,
    },
    SubscriptionState.STOPPING: {
        SubscriptionState.STOPPED,
    },
}


class InvalidStateTransitionError(Exception):
    """Raised on an illegal lifecycle transition."""

    def __init__(self, from_state: SubscriptionState, to_state: SubscriptionState) -> None:
        super().__init__(f"Invalid transition: {from_state.value} -> {to_state.value}")
        self.from_state = from_state
        self.to_state = to_state


@dataclass
class StateTransitionEvent:
    """Record of one transition."""

    from_state: SubscriptionState
    to_state: SubscriptionState
    reason: str = ""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class SubscriptionStateMachine:
    """Guards and records lifecycle transitions."""

    def __init__(self, name: str = "subscription", max_history: int = 200) -> None:
        self._name = name
        self._state = SubscriptionState.STOPPED
        self._history: List[StateTransitionEvent] = []
        self._max_history = max_history

    @property
    def state(self) -> SubscriptionState:
        return self._state

    @property
    def history(self) -> List[StateTransitionEvent]:
        return list(self._history)

    def can_transition_to(self, target: SubscriptionState) -> bool:
        return target in VALID_TRANSITIONS.get(self._state, set())

    def transition_to(self, target: SubscriptionState, reason: str = "") -> StateTransitionEvent:
        """
        Raises:
            InvalidStateTransitionError: If the transition is not allowed
        """
        if not self.can_transition_to(target):
            raise InvalidStateTransitionError(self._state, target)

        event = StateTransitionEvent(from_state=self._state, to_state=target, reason=reason)
        self._state = target
        self._history.append(event)
        if len(self._history) > self._max_history:
            self._history = self._history[-self._max_history:]

        logger.info(
            f"[{self._name}] {event.from_state.value} -> {event.to_state.value}"
            + (f" ({reason})" if reason else "")
        )
        return event
