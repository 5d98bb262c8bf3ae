from __future__ import annotations

import gc
import os
import select
import signal
import sys
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, List, Optional, TextIO

import structlog
import yaml

from spindle.core.hooks import HookPoint
from spindle.core.models import RELOAD_EXIT_CODE, SpindleSettings, settings_document
from spindle.runtime.contracts import SupervisorRole, SupervisorState, transition_supervisor_state
from spindle.runtime.pidfile import remove_pid, store_pid

if TYPE_CHECKING:
    from spindle.core.context import BootContext

logger = structlog.get_logger(__name__)


@dataclass
class SpawnerHandle:
    """The master's view of the current spawner process."""

    pid: int
    reader: Optional[TextIO]
    status: Optional[int] = None

    def close(self) -> None:
        if self.reader is not None and not self.reader.closed:
            self.reader.close()
        self.reader = None


class ProcessSupervisor:
    """
    Master/spawner process supervision.

    The master forks a spawner that carries on with the boot sequence and
    watches it through a pipe and its exit status. A spawner exiting with
    RELOAD_EXIT_CODE (or reporting it through the pipe) is replaced by a fresh
    fork; anything else ends the master.
    """

    POLL_INTERVAL = 0.5

    def __init__(
        self,
        context: "BootContext",
        fork: Optional[Callable[[], int]] = None,
        waitpid: Optional[Callable[[int, int], tuple]] = None,
        select_fn: Optional[Callable[..., tuple]] = None,
        kill: Optional[Callable[[int, int], None]] = None,
    ) -> None:
        self.context = context
        self.role = SupervisorRole.STANDALONE
        self.state = SupervisorState.IDLE
        self.handle: Optional[SpawnerHandle] = None
        self.writer: Optional[TextIO] = None
        self.worker_pids: List[int] = []
        self.exiting = False
        self._fork = fork or os.fork
        self._waitpid = waitpid or os.waitpid
        self._select = select_fn or select.select
        self._kill = kill or os.kill

    @property
    def settings(self) -> SpindleSettings:
        return self.context.settings

    @property
    def is_spawner(self) -> bool:
        return self.role == SupervisorRole.SPAWNER

    @property
    def reap_signal(self) -> signal.Signals:
        """Signal used to terminate workers: KILL when reaping quickly, else ABRT."""
        return signal.SIGKILL if self.settings.reap_workers_quickly else signal.SIGABRT

    def track_worker(self, pid: int) -> None:
        """Register a sub-worker process to be signalled on reap."""
        if pid not in self.worker_pids:
            self.worker_pids.append(pid)

    # ------------------------------------------------------------------
    # Signal traps
    # ------------------------------------------------------------------

    def trap(self, signum: int, handler: Callable[[], object]) -> None:
        if self.settings.disabled_signals:
            return
        signal.signal(signum, lambda _signum, _frame: handler())

    def trap_diagnostics(self) -> None:
        """Dump the configuration to the log on USR1."""
        self.trap(signal.SIGUSR1, self.dump_configuration)

    def dump_configuration(self) -> None:
        document = yaml.safe_dump(settings_document(self.settings, pid=os.getpid()), sort_keys=True)
        logger.critical("configuration", document=document)

    def trap_standalone(self) -> None:
        """Traps for a process that loads classes without fork isolation."""

        def on_interrupt() -> None:
            logger.warning("reaping_workers")
            self.reap_workers()

        self.trap(signal.SIGINT, on_interrupt)

    def _trap_master(self, pid: int) -> None:
        def on_interrupt() -> None:
            logger.warning("reaping_workers", spawner=pid)
            try:
                self._kill(pid, self.reap_signal)
            except OSError:
                pass
            self.exit_gracefully()

        def on_hangup() -> None:
            logger.warning("fast_deploy", spawner=pid)
            try:
                self._kill(pid, signal.SIGHUP)
            except OSError:
                pass

        self.trap(signal.SIGINT, on_interrupt)
        self.trap(signal.SIGHUP, on_hangup)

    def _trap_spawner(self) -> None:
        self.trap(signal.SIGINT, lambda: self.context.hooks.run(HookPoint.BEFORE_WORKER_SHUTDOWN))
        self.trap(signal.SIGABRT, self.reap_workers)
        self.trap(signal.SIGHUP, lambda: self.reap_workers(RELOAD_EXIT_CODE, signal.SIGABRT))

    # ------------------------------------------------------------------
    # Master loop
    # ------------------------------------------------------------------

    def start_transaction(self) -> None:
        """
        Fork the spawner and supervise it.

        Returns only in the spawner, which continues the boot sequence. The
        master loops here, forking again whenever a reload is requested, and
        leaves through exit_gracefully().
        """
        logger.warning("master_started", pid=os.getpid())
        self.role = SupervisorRole.MASTER

        while True:
            self._set_state(SupervisorState.SPAWNING)
            reader_fd, writer_fd = os.pipe()
            gc.freeze()
            pid = self._fork()

            if pid == 0:
                self._become_spawner(reader_fd, writer_fd)
                return

            # Closing our copy of the write end lets the reader see EOF.
            os.close(writer_fd)
            self.handle = SpawnerHandle(pid=pid, reader=os.fdopen(reader_fd, "r"))
            logger.info("spawner_forked", pid=pid)

            if self.settings.daemonize or self.settings.cluster:
                store_pid(self.settings, "main")

            self._trap_master(pid)
            self._set_state(SupervisorState.MONITORING)
            self._monitor(self.handle)
            self.handle.close()

    def _monitor(self, handle: SpawnerHandle) -> None:
        """Poll the spawner until it asks for a reload (return) or ends (exit)."""
        while True:
            try:
                finished_pid, raw_status = self._waitpid(handle.pid, os.WNOHANG)
            except ChildProcessError:
                self.exit_gracefully()
                return

            if finished_pid:
                self._spawner_finished(handle, raw_status)
                return

            readable, _, _ = self._select([handle.reader], [], [], self.POLL_INTERVAL)
            if not readable:
                continue

            try:
                message = handle.reader.readline()
            except OSError:
                self.exit_gracefully()
                return

            if not message:
                # EOF without a status line: the exit code decides.
                try:
                    _, raw_status = self._waitpid(handle.pid, 0)
                except ChildProcessError:
                    self.exit_gracefully()
                    return
                self._spawner_finished(handle, raw_status)
                return

            if message.strip() == str(RELOAD_EXIT_CODE):
                handle.status = RELOAD_EXIT_CODE
                # The spawner reaps its own workers before writing, so this returns promptly.
                try:
                    self._waitpid(handle.pid, 0)
                except ChildProcessError:
                    pass
                logger.warning("spawner_reload_requested", pid=handle.pid)
                self._set_state(SupervisorState.RELOADING)
                return

            status = int(message.strip()) if message.strip().isdigit() else 0
            self.exit_gracefully(status)
            return

    def _spawner_finished(self, handle: SpawnerHandle, raw_status: int) -> None:
        handle.status = os.waitstatus_to_exitcode(raw_status)
        if handle.status == RELOAD_EXIT_CODE:
            logger.warning("spawner_reload_requested", pid=handle.pid)
            self._set_state(SupervisorState.RELOADING)
            return
        logger.warning("spawner_exited", pid=handle.pid, status=handle.status)
        self.exit_gracefully(self._master_status(handle.status))

    def _become_spawner(self, reader_fd: int, writer_fd: int) -> None:
        os.close(reader_fd)
        self.writer = os.fdopen(writer_fd, "w")
        self.role = SupervisorRole.SPAWNER
        self.handle = None
        self.worker_pids = []
        gc.unfreeze()
        self._trap_spawner()

    @staticmethod
    def _master_status(status: int) -> int:
        # Killed by a signal: report it the way shells do.
        return 128 - status if status < 0 else status

    def _set_state(self, target: SupervisorState) -> None:
        self.state = transition_supervisor_state(self.state, target)

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def reap_workers(self, status: int = 0, sig: Optional[int] = None) -> None:
        """
        Tear this worker down and exit with status.

        Shutdown hooks run first, then the status is reported to the master,
        then every tracked sub-worker is signalled and waited for in parallel.
        A status of RELOAD_EXIT_CODE makes the master fork a replacement.
        """
        sig = sig if sig is not None else self.reap_signal

        logger.info("running_before_worker_shutdown_hooks", status=status)
        self.context.hooks.run(HookPoint.BEFORE_WORKER_SHUTDOWN)

        if status != RELOAD_EXIT_CODE:
            self.exiting = True

        writer, self.writer = self.writer, None
        if writer is not None:
            try:
                writer.write(f"{status}\n")
                writer.flush()
            except OSError:
                pass
            finally:
                try:
                    writer.close()
                except OSError:
                    pass

        threads = [
            threading.Thread(target=self._signal_and_wait, args=(pid, sig), daemon=True)
            for pid in self.worker_pids
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self._terminate(status)

    def _signal_and_wait(self, pid: int, sig: int) -> None:
        try:
            self._kill(pid, sig)
            self._waitpid(pid, 0)
        except OSError:
            pass

    def exit_gracefully(self, status: int = 0) -> None:
        """Wait for every child, drop the main pid file, run master hooks, exit."""
        if self.state != SupervisorState.EXITING:
            self._set_state(SupervisorState.EXITING)
        self.exiting = True

        while True:
            try:
                self._waitpid(-1, 0)
            except ChildProcessError:
                break

        remove_pid(self.settings, "main")
        self.context.hooks.run(HookPoint.BEFORE_MASTER_SHUTDOWN)
        self._terminate(status)

    def _terminate(self, status: int) -> None:
        if threading.current_thread() is threading.main_thread():
            sys.exit(status)
        # sys.exit() would only end this thread.
        sys.stdout.flush()
        os._exit(status)
