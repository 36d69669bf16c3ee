from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from pydantic import ValidationError

from compctl.config.loader import ConfigLoadError, config_path, load_config
from compctl.core.models import AppConfig, ClientSettings, ControlSettings

logger = logging.getLogger(__name__)


class ReloadStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass(frozen=True)
class ReloadLifecycleEvent:
    """Host-facing reload lifecycle event payload."""

    status: ReloadStatus
    generation: int
    message: str


class CompositorRuntime:
    """Headless compositor state that the control service acts on.

    Owns the loaded `compctl.yaml` and the process stop hook. Reloads are
    serialized with each other but never block control calls, which only
    dispatch them.
    """

    def __init__(
        self,
        root_dir: Path,
        on_stop: Optional[Callable[[], None]] = None,
        on_reload_success: Optional[Callable[[ReloadLifecycleEvent], None]] = None,
        on_reload_failure: Optional[Callable[[ReloadLifecycleEvent], None]] = None,
    ) -> None:
        self.root_dir = root_dir
        self.on_stop = on_stop
        self.on_reload_success = on_reload_success
        self.on_reload_failure = on_reload_failure

        self.control = ControlSettings()
        self.client = ClientSettings()
        self.config = AppConfig()
        self.generation = 0

        self._reload_lock = threading.Lock()
        self._stopped = threading.Event()

    @property
    def config_file(self) -> Path:
        return config_path(self.root_dir)

    def load_initial(self) -> None:
        """Load config at boot; unlike a reload, a broken file here is fatal."""
        self._apply(load_config(self.config_file))

    def reload_config(self) -> ReloadLifecycleEvent:
        """Re-read config in place; a failed reload keeps the previous config."""
        with self._reload_lock:
            try:
                self._apply(load_config(self.config_file))
            except (ConfigLoadError, ValidationError) as exc:
                event = ReloadLifecycleEvent(
                    status=ReloadStatus.FAILURE,
                    generation=self.generation,
                    message=str(exc),
                )
                logger.error("Config reload failed; keeping generation %d: %s", self.generation, exc)
                if self.on_reload_failure is not None:
                    self.on_reload_failure(event)
                return event

            event = ReloadLifecycleEvent(
                status=ReloadStatus.SUCCESS,
                generation=self.generation,
                message=f"Loaded {self.config_file}",
            )
            logger.info("Config reloaded (generation %d)", self.generation)
            if self.on_reload_success is not None:
                self.on_reload_success(event)
            return event

    def quit(self) -> None:
        """Stop the compositor; safe to call more than once."""
        if self._stopped.is_set():
            return
        self._stopped.set()
        logger.info("Compositor stopping")
        if self.on_stop is not None:
            self.on_stop()

    @property
    def stopped(self) -> bool:
        return self._stopped.is_set()

    def _apply(self, config_data: Dict[str, Any]) -> None:
        control = ControlSettings(**(config_data.get("control") or {}))
        client = ClientSettings(**(config_data.get("client") or {}))
        config = AppConfig(**(config_data.get("config") or {}))

        self.control = control
        self.client = client
        self.config = config
        self.generation += 1
