import os
import signal
import typer
import yaml
from pathlib import Path
from typing import Any, Dict, Optional

from spindle.boot.steps import boot, create_context
from spindle.cli.formatter import OutputFormatter
from spindle.config.loader import build_settings
from spindle.core.models import SpindleSettings, settings_document
from spindle.runtime.pidfile import PidState, probe_pid_file
from spindle.utils.diagnostics import BootError

app = typer.Typer(name="spindle", help="Spindle application server", rich_markup_mode=None)


def _load_settings(root: Path, overrides: Optional[Dict[str, Any]] = None) -> SpindleSettings:
    try:
        return build_settings(root.expanduser().resolve(), overrides)
    except ValueError as exc:
        # pydantic ValidationError is a ValueError
        OutputFormatter.log(f"Invalid configuration: {exc}", severity="error")
        raise typer.Exit(code=1)


def _signal_main(settings: SpindleSettings, signum: int, action: str) -> None:
    probe = probe_pid_file(settings, "main")
    if probe.state != PidState.RUNNING or probe.pid is None:
        OutputFormatter.log(f"Cannot {action}: {probe.reason} ({probe.pid_path})", severity="error")
        raise typer.Exit(code=1)

    try:
        os.kill(probe.pid, signum)
    except OSError as exc:
        OutputFormatter.log(f"Cannot {action} pid={probe.pid}: {exc}", severity="error")
        raise typer.Exit(code=1)

    OutputFormatter.log(f"Sent {signal.Signals(signum).name} to pid={probe.pid}.", severity="success")


@app.command()
def start(
    root: Path = typer.Option(Path("."), "--root", "-r", help="Application root directory."),
    environment: Optional[str] = typer.Option(None, "--environment", "-e"),
    adapter: Optional[str] = typer.Option(None, "--adapter", "-a"),
    fork: Optional[bool] = typer.Option(None, "--fork/--no-fork", help="Load classes in a forked spawner."),
    reload: Optional[bool] = typer.Option(None, "--reload/--no-reload", help="Reload classes when files change."),
    daemonize: Optional[bool] = typer.Option(None, "--daemonize/--foreground", "-d", help="Write the main pid file."),
    cluster: Optional[int] = typer.Option(None, "--cluster", "-c", min=1),
    pid_file: Optional[str] = typer.Option(None, "--pid-file", "-P"),
    init_file: Optional[str] = typer.Option(None, "--init-file", "-I"),
    log_level: Optional[str] = typer.Option(None, "--log-level", "-l"),
    log_file: Optional[str] = typer.Option(None, "--log-file", "-L"),
    verbose: Optional[bool] = typer.Option(None, "--verbose/--quiet", "-V"),
):
    """
    Boot the application found under --root.
    """
    settings = _load_settings(
        root,
        {
            "environment": environment,
            "adapter": adapter,
            "fork_for_class_load": fork,
            "reload_classes": reload,
            "daemonize": daemonize,
            "cluster": cluster,
            "pid_file": pid_file,
            "init_file": init_file,
            "log_level": log_level,
            "log_file": log_file,
            "verbose": verbose,
        },
    )

    try:
        boot(create_context(settings))
    except BootError as exc:
        OutputFormatter.print_diagnostics(exc.diagnostics)
        OutputFormatter.log(f"Boot failed: {exc.message}", severity="critical")
        raise typer.Exit(code=1)


@app.command()
def stop(
    root: Path = typer.Option(Path("."), "--root", "-r"),
    pid_file: Optional[str] = typer.Option(None, "--pid-file", "-P"),
):
    """
    Stop a running master (SIGINT).
    """
    _signal_main(_load_settings(root, {"pid_file": pid_file}), signal.SIGINT, "stop")


@app.command()
def deploy(
    root: Path = typer.Option(Path("."), "--root", "-r"),
    pid_file: Optional[str] = typer.Option(None, "--pid-file", "-P"),
):
    """
    Replace the running spawner with a freshly loaded one (SIGHUP).
    """
    _signal_main(_load_settings(root, {"pid_file": pid_file}), signal.SIGHUP, "deploy")


@app.command()
def status(
    root: Path = typer.Option(Path("."), "--root", "-r"),
    pid_file: Optional[str] = typer.Option(None, "--pid-file", "-P"),
):
    """
    Report whether the master recorded in the pid file is alive.
    """
    probe = probe_pid_file(_load_settings(root, {"pid_file": pid_file}), "main")
    OutputFormatter.print_data(probe)
    if probe.state != PidState.RUNNING:
        raise typer.Exit(code=1)


@app.command()
def config(
    root: Path = typer.Option(Path("."), "--root", "-r"),
    environment: Optional[str] = typer.Option(None, "--environment", "-e"),
):
    """
    Print the effective settings as YAML.
    """
    settings = _load_settings(root, {"environment": environment})
    typer.echo(yaml.safe_dump(settings_document(settings), sort_keys=True))


if __name__ == "__main__":
    app()
