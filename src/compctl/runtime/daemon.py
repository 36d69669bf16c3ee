from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError


class DaemonState(str, Enum):
    """Classification of control endpoint metadata/liveness state."""

    ABSENT = "absent"
    RUNNING = "running"
    STALE = "stale"


class DaemonMetadata(BaseModel):
    """Persisted control endpoint metadata, used by clients to find the server."""

    pid: int = Field(gt=0)
    port: int = Field(ge=1, le=65535)
    started_at: str
    host: str = "127.0.0.1"


class DaemonProbeResult(BaseModel):
    """Result payload from probing control endpoint metadata/liveness."""

    state: DaemonState
    metadata: DaemonMetadata | None = None
    metadata_path: str
    reason: str


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def daemon_metadata_path(root_dir: Path) -> Path:
    """Return the control endpoint metadata file path for a root."""
    return root_dir / ".compctl" / "control.json"


def write_daemon_metadata(root_dir: Path, metadata: DaemonMetadata) -> Path:
    """Persist control endpoint metadata for a root."""
    metadata_file = daemon_metadata_path(root_dir)
    metadata_file.parent.mkdir(parents=True, exist_ok=True)
    metadata_file.write_text(metadata.model_dump_json(indent=2), encoding="utf-8")
    return metadata_file


def is_process_alive(pid: int) -> bool:
    """Return True when a process id appears to be alive on this host."""
    if pid <= 0:
        return False

    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    except OSError:
        return False

    return True


def probe_daemon_state(root_dir: Path) -> DaemonProbeResult:
    """Classify control endpoint state for a root as absent, running, or stale."""
    metadata_file = daemon_metadata_path(root_dir)
    if not metadata_file.exists():
        return DaemonProbeResult(
            state=DaemonState.ABSENT,
            metadata=None,
            metadata_path=str(metadata_file),
            reason="Control endpoint metadata file not found.",
        )

    try:
        payload = json.loads(metadata_file.read_text(encoding="utf-8"))
        metadata = DaemonMetadata.model_validate(payload)
    except (OSError, json.JSONDecodeError, ValidationError) as exc:
        return DaemonProbeResult(
            state=DaemonState.STALE,
            metadata=None,
            metadata_path=str(metadata_file),
            reason=f"Invalid control endpoint metadata payload: {exc}",
        )

    if not is_process_alive(metadata.pid):
        return DaemonProbeResult(
            state=DaemonState.STALE,
            metadata=metadata,
            metadata_path=str(metadata_file),
            reason=f"Compositor process pid={metadata.pid} is not alive.",
        )

    return DaemonProbeResult(
        state=DaemonState.RUNNING,
        metadata=metadata,
        metadata_path=str(metadata_file),
        reason="Compositor process is alive.",
    )


def recover_stale_daemon_metadata(root_dir: Path) -> bool:
    """Delete stale metadata file when state is classified as stale."""
    probe = probe_daemon_state(root_dir)
    if probe.state != DaemonState.STALE:
        return False

    metadata_file = Path(probe.metadata_path)
    if metadata_file.exists():
        metadata_file.unlink()
    return True


def clear_daemon_metadata(root_dir: Path, expected_pid: int | None = None) -> bool:
    """Remove metadata, optionally only when it still belongs to `expected_pid`."""
    metadata_file = daemon_metadata_path(root_dir)
    if not metadata_file.exists():
        return False

    if expected_pid is not None:
        probe = probe_daemon_state(root_dir)
        if probe.metadata is not None and probe.metadata.pid != expected_pid:
            return False

    metadata_file.unlink()
    return True
