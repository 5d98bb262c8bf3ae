from __future__ import annotations

from enum import Enum
from typing import Dict, Set


class SupervisorRole(str, Enum):
    """Which side of the fork boundary this process is on."""

    STANDALONE = "standalone"
    MASTER = "master"
    SPAWNER = "spawner"


class SupervisorState(str, Enum):
    """Master-side states of the spawn/monitor loop."""

    IDLE = "idle"
    SPAWNING = "spawning"
    MONITORING = "monitoring"
    RELOADING = "reloading"
    EXITING = "exiting"


_MASTER_TRANSITIONS: Dict[SupervisorState, Set[SupervisorState]] = {
    SupervisorState.IDLE: {SupervisorState.SPAWNING, SupervisorState.EXITING},
    SupervisorState.SPAWNING: {SupervisorState.MONITORING, SupervisorState.EXITING},
    SupervisorState.MONITORING: {SupervisorState.RELOADING, SupervisorState.EXITING},
    SupervisorState.RELOADING: {SupervisorState.SPAWNING, SupervisorState.EXITING},
    SupervisorState.EXITING: set(),
}


def transition_supervisor_state(current: SupervisorState, target: SupervisorState) -> SupervisorState:
    """Validate and return the next master state.

    spawning -> monitoring -> reloading -> spawning is the respawn cycle;
    every state may move to exiting. Invalid transitions raise ValueError.
    """

    if target not in _MASTER_TRANSITIONS[current]:
        raise ValueError(f"Invalid supervisor transition: {current} -> {target}")
    return target


class WatcherState(str, Enum):
    """Lifecycle of the class reloader thread."""

    STOPPED = "stopped"
    WATCHING = "watching"
    RELOADING = "reloading"
