from __future__ import annotations

import os
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel

from spindle.core.models import SpindleSettings


class PidState(str, Enum):
    """Classification of pid-file/liveness state."""

    ABSENT = "absent"
    RUNNING = "running"
    STALE = "stale"


class PidProbeResult(BaseModel):
    """Result payload from probing a pid file."""

    state: PidState
    pid: Optional[int] = None
    pid_path: str
    reason: str


def pid_file_path(settings: SpindleSettings, label: str = "main") -> Path:
    """Return the pid file path for a process label ('main' for the master)."""
    if settings.pid_file:
        if "%s" in settings.pid_file:
            return Path(settings.pid_file.replace("%s", label))
        if label == "main":
            return Path(settings.pid_file)
        pid_path = Path(settings.pid_file)
        return pid_path.with_name(f"{pid_path.stem}.{label}{pid_path.suffix}")
    return settings.root / "log" / f"{settings.name}.{label}.pid"


def store_pid(settings: SpindleSettings, label: str = "main", pid: Optional[int] = None) -> Path:
    """Write the current (or given) process id to the pid file for label."""
    pid_path = pid_file_path(settings, label)
    pid_path.parent.mkdir(parents=True, exist_ok=True)
    pid_path.write_text(f"{pid if pid is not None else os.getpid()}\n", encoding="utf-8")
    return pid_path


def remove_pid(settings: SpindleSettings, label: str = "main") -> bool:
    """Remove the pid file for label; returns whether a file was removed."""
    pid_path = pid_file_path(settings, label)
    if not pid_path.exists():
        return False
    pid_path.unlink()
    return True


def read_pid(settings: SpindleSettings, label: str = "main") -> Optional[int]:
    """Return the pid stored for label, or None when missing or unreadable."""
    pid_path = pid_file_path(settings, label)
    try:
        return int(pid_path.read_text(encoding="utf-8").strip())
    except (OSError, ValueError):
        return None


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


def probe_pid_file(settings: SpindleSettings, label: str = "main") -> PidProbeResult:
    """Classify a pid file as absent, running, or stale."""
    pid_path = pid_file_path(settings, label)
    if not pid_path.exists():
        return PidProbeResult(
            state=PidState.ABSENT,
            pid_path=str(pid_path),
            reason="Pid file not found.",
        )

    pid = read_pid(settings, label)
    if pid is None:
        return PidProbeResult(
            state=PidState.STALE,
            pid_path=str(pid_path),
            reason="Invalid pid file contents.",
        )

    if not is_process_alive(pid):
        return PidProbeResult(
            state=PidState.STALE,
            pid=pid,
            pid_path=str(pid_path),
            reason=f"Process pid={pid} is not alive.",
        )

    return PidProbeResult(
        state=PidState.RUNNING,
        pid=pid,
        pid_path=str(pid_path),
        reason="Process is alive.",
    )
