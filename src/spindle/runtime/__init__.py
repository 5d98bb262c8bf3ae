"""Process supervision, pid files and the class reloader."""

from spindle.runtime.contracts import (
	SupervisorRole,
	SupervisorState,
	WatcherState,
	transition_supervisor_state,
)
from spindle.runtime.pidfile import (
	PidProbeResult,
	PidState,
	pid_file_path,
	probe_pid_file,
	read_pid,
	remove_pid,
	store_pid,
)

__all__ = [
	"PidProbeResult",
	"PidState",
	"SupervisorRole",
	"SupervisorState",
	"WatcherState",
	"pid_file_path",
	"probe_pid_file",
	"read_pid",
	"remove_pid",
	"store_pid",
	"transition_supervisor_state",
]
