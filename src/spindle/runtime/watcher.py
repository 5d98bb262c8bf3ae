from __future__ import annotations

import gc
import os
import threading
import time
from typing import TYPE_CHECKING, List, Optional

import structlog

from spindle.loading.loader import UnitLoader
from spindle.runtime.contracts import WatcherState

if TYPE_CHECKING:
    from spindle.core.context import BootContext

logger = structlog.get_logger(__name__)


class ClassReloader:
    """
    Polls modification times of every auto-loaded file and reloads the ones
    that changed since they were last loaded.
    """

    def __init__(self, context: "BootContext") -> None:
        self.context = context
        self.state: WatcherState = WatcherState.STOPPED
        self.thread: Optional[threading.Thread] = None
        self.interval: Optional[float] = None

    def start(self, interval: Optional[float] = None) -> threading.Thread:
        """Start the background polling thread; it lives as long as the process."""
        if self.thread is not None and self.thread.is_alive():
            return self.thread

        self.interval = interval if interval is not None else self.context.settings.reload_time
        self.state = WatcherState.WATCHING
        self.thread = threading.Thread(target=self._watch_loop, name="spindle-reloader", daemon=True)
        self.thread.start()
        logger.info("class_reloader_started", interval=self.interval)
        return self.thread

    def tick(self) -> List[str]:
        """Run one poll cycle; returns the files that were reloaded."""
        gc.collect()

        loader = self.context.loader
        changed = self.changed_files()
        if not changed:
            return []

        previous, self.state = self.state, WatcherState.RELOADING
        try:
            for file in changed:
                try:
                    loader.reload(file)
                    logger.info("reloaded_file", file=file)
                except Exception as exc:
                    logger.error("reload_failed", file=file, error=str(exc), error_class=type(exc).__name__)
        finally:
            self.state = previous
        return changed

    def changed_files(self) -> List[str]:
        """Files that were never loaded or whose mtime differs from the recorded one."""
        mtimes = self.context.loader.mtimes
        changed: List[str] = []
        for file in self.build_paths():
            recorded = mtimes.get(file)
            try:
                current = os.path.getmtime(file)
            except OSError:
                continue
            if recorded is not None and recorded == current:
                continue
            changed.append(file)
        return changed

    def build_paths(self) -> List[str]:
        """Every file under glob-bearing path entries, plus the flat application file."""
        paths = self.context.paths
        files: List[str] = []
        for entry in paths.loadable():
            files.extend(UnitLoader.expand(entry.pattern))

        application = paths.file_for("application")
        if application is not None and application.is_file() and str(application) not in files:
            files.append(str(application))

        return list(dict.fromkeys(files))

    def _watch_loop(self) -> None:
        while True:
            time.sleep(self.interval)
            self.tick()
