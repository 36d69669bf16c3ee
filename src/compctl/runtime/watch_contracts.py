from __future__ import annotations

from enum import Enum


class SubscriptionState(str, Enum):
    """Lifecycle states of one shutdown-watch subscription."""

    PENDING = "pending"
    NOTIFIED = "notified"
    CANCELLED = "cancelled"


class SubscriptionEvent(str, Enum):
    """Events that drive subscription state transitions."""

    SHUTDOWN = "shutdown"
    CANCEL = "cancel"


TERMINAL_STATES = frozenset({SubscriptionState.NOTIFIED, SubscriptionState.CANCELLED})


def transition_subscription_state(
    current: SubscriptionState,
    event: SubscriptionEvent,
) -> SubscriptionState:
    """Compute the next subscription state for a given event.

    Only `pending` has outgoing transitions:
    - shutdown: pending -> notified
    - cancel: pending -> cancelled

    Both results are terminal. Any event on a terminal state raises
    ValueError, which is what guarantees at-most-one notification.
    """

    if current == SubscriptionState.PENDING:
        if event == SubscriptionEvent.SHUTDOWN:
            return SubscriptionState.NOTIFIED
        if event == SubscriptionEvent.CANCEL:
            return SubscriptionState.CANCELLED
        raise ValueError(f"Unknown subscription event: {event}")

    if current in TERMINAL_STATES:
        raise ValueError(f"Invalid subscription transition: {current} -> {event}")

    raise ValueError(f"Unknown subscription state: {current}")
