"""Lifecycle control service, shutdown notifier, transport and client."""

from compctl.runtime.client import LifecycleClient
from compctl.runtime.controller import CompositorRuntime, ReloadLifecycleEvent, ReloadStatus
from compctl.runtime.notifier import ShutdownNotifier, ShutdownSubscription
from compctl.runtime.server import ControlServer
from compctl.runtime.service import LifecycleControlService, echo_ping
from compctl.runtime.watch_contracts import SubscriptionEvent, SubscriptionState

__all__ = [
    "CompositorRuntime",
    "ControlServer",
    "LifecycleClient",
    "LifecycleControlService",
    "ReloadLifecycleEvent",
    "ReloadStatus",
    "ShutdownNotifier",
    "ShutdownSubscription",
    "SubscriptionEvent",
    "SubscriptionState",
    "echo_ping",
]
