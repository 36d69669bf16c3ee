from __future__ import annotations

import itertools
import logging
import threading
from typing import Callable, Dict, List, Optional

from compctl.runtime.watch_contracts import (
    TERMINAL_STATES,
    SubscriptionEvent,
    SubscriptionState,
    transition_subscription_state,
)

logger = logging.getLogger(__name__)

_subscription_ids = itertools.count(1)


class ShutdownSubscription:
    """Single-resolution handle for one shutdown-watch call.

    State is only ever changed by the owning `ShutdownNotifier` while it
    holds the registry lock. Waiters and callbacks are released afterwards,
    outside the lock.
    """

    def __init__(self, state: SubscriptionState = SubscriptionState.PENDING) -> None:
        self.id = next(_subscription_ids)
        self._state = state
        self._done = threading.Event()
        self._callbacks: List[Callable[[ShutdownSubscription], None]] = []
        self._callbacks_lock = threading.Lock()

    def __repr__(self) -> str:
        return f"ShutdownSubscription(id={self.id}, state={self._state.value})"

    @property
    def state(self) -> SubscriptionState:
        return self._state

    @property
    def notified(self) -> bool:
        return self._state == SubscriptionState.NOTIFIED

    def done(self) -> bool:
        return self._done.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until terminal; returns True only when the subscription was notified."""
        self._done.wait(timeout)
        return self.notified

    def add_done_callback(self, callback: Callable[[ShutdownSubscription], None]) -> None:
        """Run `callback(self)` once the subscription is terminal, immediately if it already is."""
        with self._callbacks_lock:
            if not self._done.is_set():
                self._callbacks.append(callback)
                return
        callback(self)

    def _set_state(self, event: SubscriptionEvent) -> None:
        self._state = transition_subscription_state(self._state, event)

    def _complete(self) -> None:
        with self._callbacks_lock:
            self._done.set()
            callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback(self)
            except Exception:
                logger.exception("Shutdown-watch callback failed for %r", self)


class ShutdownNotifier:
    """Process-wide broadcast of the one-time shutdown latch.

    Registration, cancellation and the broadcast sweep are serialized by a
    single lock over the registry. A subscriber that registers after the
    latch fired is born `notified` and never enters the registry, so it
    still observes exactly one notification.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._pending: Dict[int, ShutdownSubscription] = {}
        self._fired = threading.Event()

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)

    @property
    def fired(self) -> bool:
        return self._fired.is_set()

    def wait_fired(self, timeout: Optional[float] = None) -> bool:
        return self._fired.wait(timeout)

    def subscribe(self) -> ShutdownSubscription:
        """Create a subscription; pending until shutdown or cancellation."""
        with self._lock:
            if self._fired.is_set():
                subscription = ShutdownSubscription(state=SubscriptionState.NOTIFIED)
            else:
                subscription = ShutdownSubscription()
                self._pending[subscription.id] = subscription

        if subscription.notified:
            logger.debug("Shutdown already latched; %r resolved on subscribe", subscription)
            subscription._complete()
        else:
            logger.debug("Registered %r", subscription)
        return subscription

    def cancel(self, subscription: ShutdownSubscription) -> bool:
        """Cancel a pending subscription and drop it from the registry.

        Returns False when the subscription was already terminal.
        """
        with self._lock:
            if subscription.state in TERMINAL_STATES:
                return False
            subscription._set_state(SubscriptionEvent.CANCEL)
            self._pending.pop(subscription.id, None)

        logger.debug("Cancelled %r", subscription)
        subscription._complete()
        return True

    def fire(self) -> int:
        """Latch shutdown and notify every pending subscription exactly once.

        Returns the number of subscriptions notified by this call; later
        calls return 0.
        """
        with self._lock:
            if self._fired.is_set():
                return 0
            self._fired.set()
            swept = list(self._pending.values())
            self._pending.clear()
            for subscription in swept:
                subscription._set_state(SubscriptionEvent.SHUTDOWN)

        logger.info("Shutdown latched; notifying %d watcher(s)", len(swept))
        for subscription in swept:
            subscription._complete()
        return len(swept)
