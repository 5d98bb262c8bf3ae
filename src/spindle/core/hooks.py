from __future__ import annotations

from enum import Enum
from typing import Callable, Dict, List, Set

import structlog

logger = structlog.get_logger(__name__)

Hook = Callable[[], object]


class HookPoint(str, Enum):
    """Lifecycle points callbacks can be attached to."""

    BEFORE_APP_LOADS = "before_app_loads"
    AFTER_APP_LOADS = "after_app_loads"
    BEFORE_WORKER_SHUTDOWN = "before_worker_shutdown"
    BEFORE_MASTER_SHUTDOWN = "before_master_shutdown"


SHUTDOWN_POINTS = {HookPoint.BEFORE_WORKER_SHUTDOWN, HookPoint.BEFORE_MASTER_SHUTDOWN}


class LifecycleHooks:
    """Append-only callback lists for the app-load and shutdown lifecycle points."""

    def __init__(self) -> None:
        self._hooks: Dict[HookPoint, List[Hook]] = {point: [] for point in HookPoint}
        self._fired: Set[HookPoint] = set()

    def add(self, point: HookPoint | str, callback: Hook) -> Hook:
        self._hooks[HookPoint(point)].append(callback)
        return callback

    def callbacks(self, point: HookPoint | str) -> List[Hook]:
        return list(self._hooks[HookPoint(point)])

    def before_app_loads(self, callback: Hook) -> Hook:
        return self.add(HookPoint.BEFORE_APP_LOADS, callback)

    def after_app_loads(self, callback: Hook) -> Hook:
        return self.add(HookPoint.AFTER_APP_LOADS, callback)

    def before_worker_shutdown(self, callback: Hook) -> Hook:
        return self.add(HookPoint.BEFORE_WORKER_SHUTDOWN, callback)

    def before_master_shutdown(self, callback: Hook) -> Hook:
        return self.add(HookPoint.BEFORE_MASTER_SHUTDOWN, callback)

    def has_fired(self, point: HookPoint | str) -> bool:
        return HookPoint(point) in self._fired

    def run(self, point: HookPoint | str) -> None:
        """
        Invoke callbacks in registration order.

        App-load callbacks propagate their errors. Shutdown callbacks are
        contained: each failure is logged and the remaining callbacks still
        run. A shutdown list fires at most once.
        """
        point = HookPoint(point)
        if point in SHUTDOWN_POINTS:
            if point in self._fired:
                return
            self._fired.add(point)

        for callback in list(self._hooks[point]):
            if point not in SHUTDOWN_POINTS:
                callback()
                continue
            try:
                callback()
            except Exception as exc:
                logger.critical(
                    "shutdown_callback_crashed",
                    hook=point.value,
                    callback=getattr(callback, "__name__", repr(callback)),
                    error=str(exc),
                )
