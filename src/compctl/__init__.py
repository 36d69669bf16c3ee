"""Lifecycle control plane for a long-running compositor process."""

from compctl.core.messages import (
    Empty,
    Geometry,
    PingRequest,
    PingResponse,
    QuitRequest,
    ReloadConfigRequest,
    SetOrToggle,
    ShutdownWatchRequest,
    ShutdownWatchResponse,
)

__version__ = "0.1.0"

__all__ = [
    "Empty",
    "Geometry",
    "PingRequest",
    "PingResponse",
    "QuitRequest",
    "ReloadConfigRequest",
    "SetOrToggle",
    "ShutdownWatchRequest",
    "ShutdownWatchResponse",
]
