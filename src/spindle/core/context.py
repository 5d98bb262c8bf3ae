from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union
from pydantic import BaseModel, ConfigDict, Field
from spindle.core.hooks import Hook, LifecycleHooks
from spindle.core.models import PathEntry, SpindleSettings
from spindle.core.paths import DEFAULT_GLOB, PathRegistry
from spindle.core.pipeline import BootPipeline
from spindle.loading.protected import ClassKeyedDict


class BootContext(BaseModel):
    """
    The single owner of every boot-time registry.

    One context is built per process start and handed to the pipeline, the
    loader, the supervisor and the watcher. Unit files see it as ``boot``.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    settings: SpindleSettings = Field(default_factory=SpindleSettings)

    # Named load roots (Path Registry)
    paths: PathRegistry = Field(default_factory=PathRegistry)

    # Lifecycle callbacks
    hooks: LifecycleHooks = Field(default_factory=LifecycleHooks)

    # Ordered boot steps; built in model_post_init so it can honour settings.verbose
    pipeline: Optional[BootPipeline] = None

    # Application State: mutable storage shared with the application
    app: Dict[str, Any] = Field(default_factory=dict)

    # Adapter factories by name, and the one chosen during boot
    adapters: Dict[str, Callable[[], Any]] = Field(default_factory=dict)
    adapter: Optional[Any] = None

    # Registries keyed by reloadable classes
    key_registries: List[Any] = Field(default_factory=list)

    # Runtime collaborators, wired in model_post_init
    loader: Optional[Any] = None
    supervisor: Optional[Any] = None
    reloader: Optional[Any] = None

    def model_post_init(self, __context: Any) -> None:
        """
        Wire the runtime collaborators against this context.
        """
        from spindle.loading.loader import UnitLoader
        from spindle.runtime.supervisor import ProcessSupervisor
        from spindle.runtime.watcher import ClassReloader

        if self.pipeline is None:
            self.pipeline = BootPipeline(verbose=self.settings.verbose)
        if self.loader is None:
            self.loader = UnitLoader(self)
        if self.supervisor is None:
            self.supervisor = ProcessSupervisor(self)
        if self.reloader is None:
            self.reloader = ClassReloader(self)

    @property
    def root(self) -> Path:
        return self.settings.root

    def push_path(self, name: str, root: Union[str, Path], glob: Optional[str] = DEFAULT_GLOB) -> PathEntry:
        return self.paths.push_path(name, root, glob)

    def dir_for(self, name: str) -> Optional[Path]:
        return self.paths.dir_for(name)

    def glob_for(self, name: str) -> Optional[str]:
        return self.paths.glob_for(name)

    def before_app_loads(self, callback: Hook) -> Hook:
        return self.hooks.before_app_loads(callback)

    def after_app_loads(self, callback: Hook) -> Hook:
        return self.hooks.after_app_loads(callback)

    def before_worker_shutdown(self, callback: Hook) -> Hook:
        return self.hooks.before_worker_shutdown(callback)

    def before_master_shutdown(self, callback: Hook) -> Hook:
        return self.hooks.before_master_shutdown(callback)

    def protect(self, registry: ClassKeyedDict) -> ClassKeyedDict:
        """Keep the class keys of registry valid across reloads."""
        if not any(existing is registry for existing in self.key_registries):
            self.key_registries.append(registry)
        return registry

    def register_adapter(self, name: str, factory: Callable[[], Any]) -> None:
        self.adapters[name] = factory
