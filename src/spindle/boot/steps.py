"""Default boot steps, in the order they run.

Each step is a plain function of the boot context. ``register_default_steps``
binds them into the context's pipeline; plugins can reorder them relative to
each other, or insert their own, before ``boot`` runs the pipeline.
"""

from __future__ import annotations

import sys
from functools import partial
from pathlib import Path
from typing import Callable, List, Optional, Tuple

import structlog

from spindle.boot.adapters import BUILTIN_ADAPTERS
from spindle.config.loader import config_path, load_config
from spindle.core.context import BootContext
from spindle.core.hooks import HookPoint
from spindle.core.logging import configure_logging, resolve_level
from spindle.core.models import SpindleSettings
from spindle.core.paths import apply_framework_overrides, push_default_framework
from spindle.runtime.pidfile import store_pid
from spindle.utils.diagnostics import BootError

logger = structlog.get_logger(__name__)


def setup_logger(context: BootContext) -> None:
    settings = context.settings
    configure_logging(resolve_level(settings.log_level, settings.environment))


def drop_pid_file(context: BootContext) -> None:
    """Store the main pid when running daemonized or clustered."""
    settings = context.settings
    if settings.daemonize or settings.cluster:
        store_pid(settings, "main")


def build_framework(context: BootContext) -> None:
    """
    Register the application's load paths.

    config/framework.py or framework.py take precedence over the default
    layout; ``framework`` overrides from the settings are applied last.
    """
    root = Path(context.root)
    if root.resolve() != Path.cwd().resolve() and str(root) not in sys.path:
        sys.path.append(str(root))

    for candidate in (root / "config" / "framework.py", root / "framework.py"):
        if candidate.is_file():
            context.loader.run_file(candidate)
            break
    else:
        push_default_framework(context.paths, root, context.settings.router_file)

    apply_framework_overrides(context.paths, context.settings.framework)


def dependencies(context: BootContext) -> None:
    """Run the init file and the environment file, then extend sys.path."""
    settings = context.settings
    config_dir = context.dir_for("config") or Path(context.root) / "config"

    init_file = _init_file(settings, config_dir)
    if init_file.is_file():
        logger.info("loading_init_file", file=_relative_to_root(context, init_file))
        context.loader.run_file(init_file)
    elif not settings.testing:
        raise BootError(
            "You are not in a spindle application, or you are in a flat application "
            f"and have not specified the init file (looked for {init_file})."
        )

    env_config = config_dir / "environments" / f"{settings.environment}.py"
    if env_config.is_file():
        logger.info("loading_environment_file", file=_relative_to_root(context, env_config))
        context.loader.run_file(env_config)

    expand_python_path(context)
    configure_logging(resolve_level(settings.log_level, settings.environment), settings.log_file)


def expand_python_path(context: BootContext) -> None:
    """Put the model, controller, lib and helper directories on sys.path."""
    for name in ("model", "controller", "lib", "helper"):
        directory = context.dir_for(name)
        if directory is not None and str(directory) not in sys.path:
            sys.path.insert(0, str(directory))


def before_app_loads(context: BootContext) -> None:
    context.hooks.run(HookPoint.BEFORE_APP_LOADS)


def load_classes(context: BootContext) -> None:
    """
    Load every auto-loaded path.

    With fork isolation this is where the master stays behind: the call to
    start_transaction() returns only in each freshly forked spawner, which
    then loads the classes and carries on with the remaining steps.
    """
    supervisor = context.supervisor
    supervisor.trap_diagnostics()

    if context.settings.forks:
        supervisor.start_transaction()
    else:
        supervisor.trap_standalone()

    application = context.paths.file_for("application")
    if application is not None and application.is_file():
        context.loader.load_file(application)

    patterns = [entry.pattern for entry in context.paths.loadable(exclude=("application", "router"))]
    context.loader.load_many(patterns)


def load_router(context: BootContext) -> None:
    """Load the router file once everything it may reference is loaded."""
    router = context.paths.file_for("router")
    if router is not None and router.is_file():
        context.loader.load_file(router)


def after_app_loads(context: BootContext) -> None:
    context.hooks.run(HookPoint.AFTER_APP_LOADS)


def choose_adapter(context: BootContext) -> None:
    name = context.settings.adapter
    factory = context.adapters.get(name) or BUILTIN_ADAPTERS.get(name)
    if factory is None:
        raise BootError(f"Unknown adapter '{name}'.")
    context.adapter = factory()


def reload_classes(context: BootContext) -> None:
    """Start the class reloader when reload-on-change is enabled."""
    if context.settings.reload_classes:
        context.reloader.start(context.settings.reload_time)


DEFAULT_STEPS: List[Tuple[str, Callable[[BootContext], None]]] = [
    ("logger", setup_logger),
    ("drop_pid_file", drop_pid_file),
    ("build_framework", build_framework),
    ("dependencies", dependencies),
    ("before_app_loads", before_app_loads),
    ("load_classes", load_classes),
    ("router", load_router),
    ("after_app_loads", after_app_loads),
    ("choose_adapter", choose_adapter),
    ("reload_classes", reload_classes),
]


def register_default_steps(context: BootContext) -> None:
    for name, step in DEFAULT_STEPS:
        context.pipeline.register(name, partial(step, context))


def create_context(settings: Optional[SpindleSettings] = None) -> BootContext:
    """Build a boot context with the default steps registered.

    The ``state`` section of config/spindle.yaml seeds ``context.app``.
    """
    settings = settings or SpindleSettings()
    context = BootContext(settings=settings)
    context.app.update(load_config(config_path(Path(settings.root))).get("state") or {})
    register_default_steps(context)
    return context


def boot(context: BootContext) -> BootContext:
    """Run every pending boot step, then start the chosen adapter."""
    context.pipeline.run_all()
    if context.adapter is not None:
        context.adapter.start(context)
    return context


def _init_file(settings: SpindleSettings, config_dir: Path) -> Path:
    if not settings.init_file:
        return config_dir / "init.py"
    init_file = Path(settings.init_file)
    if init_file.suffix != ".py":
        init_file = init_file.with_name(init_file.name + ".py")
    if not init_file.is_absolute():
        init_file = Path(settings.root) / init_file
    return init_file


def _relative_to_root(context: BootContext, path: Path) -> str:
    try:
        return "./" + path.resolve().relative_to(Path(context.root).resolve()).as_posix()
    except ValueError:
        return str(path.resolve())
