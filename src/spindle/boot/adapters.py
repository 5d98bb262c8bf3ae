from __future__ import annotations

import threading
from typing import TYPE_CHECKING, Protocol

import structlog

if TYPE_CHECKING:
    from spindle.core.context import BootContext

logger = structlog.get_logger(__name__)


class Adapter(Protocol):
    """What the boot core needs from a server adapter."""

    def start(self, context: "BootContext") -> None:
        ...


class RunnerAdapter:
    """Boots the application and returns; for scripts and one-off tasks."""

    def start(self, context: "BootContext") -> None:
        logger.info("runner_adapter_finished", finished_steps=len(context.pipeline.finished))


class IdleAdapter:
    """Keeps the booted process alive until a signal handler ends it."""

    def __init__(self) -> None:
        self._stopped = threading.Event()

    def start(self, context: "BootContext") -> None:
        logger.info("idle_adapter_started")
        while not self._stopped.is_set():
            self._stopped.wait(1.0)

    def stop(self) -> None:
        self._stopped.set()


BUILTIN_ADAPTERS = {
    "runner": RunnerAdapter,
    "idle": IdleAdapter,
}
