from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from compctl.core.messages import (
    Empty,
    PingRequest,
    PingResponse,
    QuitRequest,
    ReloadConfigRequest,
    ShutdownWatchRequest,
)
from compctl.runtime.notifier import ShutdownNotifier, ShutdownSubscription

logger = logging.getLogger(__name__)


def echo_ping(request: PingRequest) -> PingResponse:
    """Echo the request payload unchanged; absent stays absent."""
    return PingResponse(payload=request.payload)


def _noop() -> None:
    return None


class LifecycleControlService:
    """Dispatches the four lifecycle calls to compositor-internal collaborators.

    Every handler returns without waiting on another in-flight call: quit and
    reload hand their collaborator to a daemon thread and acknowledge
    immediately. Collaborator failures are logged, never returned to the
    caller.
    """

    def __init__(
        self,
        notifier: Optional[ShutdownNotifier] = None,
        on_quit: Optional[Callable[[], None]] = None,
        on_reload: Optional[Callable[[], None]] = None,
    ) -> None:
        self.notifier = notifier if notifier is not None else ShutdownNotifier()
        self.on_quit = on_quit or _noop
        self.on_reload = on_reload or _noop

    def quit(self, request: QuitRequest) -> Empty:
        logger.info("Quit requested")
        self.notify_shutdown()
        self._dispatch("quit", self.on_quit)
        return Empty()

    def reload_config(self, request: ReloadConfigRequest) -> Empty:
        logger.info("Config reload requested")
        self._dispatch("reload-config", self.on_reload)
        return Empty()

    def ping(self, request: PingRequest) -> PingResponse:
        return echo_ping(request)

    def shutdown_watch(self, request: ShutdownWatchRequest) -> ShutdownSubscription:
        return self.notifier.subscribe()

    def cancel_watch(self, subscription: ShutdownSubscription) -> bool:
        return self.notifier.cancel(subscription)

    def notify_shutdown(self) -> int:
        """Shutdown-event source: latch once and flush every watcher."""
        return self.notifier.fire()

    def _dispatch(self, name: str, target: Callable[[], None]) -> threading.Thread:
        thread = threading.Thread(
            target=self._run_collaborator,
            args=(name, target),
            name=f"compctl-{name}",
            daemon=True,
        )
        thread.start()
        return thread

    @staticmethod
    def _run_collaborator(name: str, target: Callable[[], None]) -> None:
        try:
            target()
        except Exception:
            logger.exception("Collaborator for '%s' failed", name)
