import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


RELOAD_EXIT_CODE = 128


def forking_available() -> bool:
    """Return whether this platform can fork worker processes."""
    return hasattr(os, "fork")


class SpindleSettings(BaseSettings):
    """
    Runtime settings consumed by the boot core (the 'spindle' section in spindle.yaml).
    """
    model_config = SettingsConfigDict(env_prefix='SPINDLE_', extra='ignore')

    root: Path = Field(default_factory=Path.cwd)
    environment: str = "development"
    name: str = "spindle"
    adapter: str = "runner"

    # Process supervision
    fork_for_class_load: bool = Field(default_factory=forking_available)
    daemonize: bool = False
    cluster: Optional[int] = Field(default=None, ge=1)
    reap_workers_quickly: Optional[bool] = None
    disabled_signals: bool = False
    pid_file: Optional[str] = None

    # Class reloading
    reload_classes: bool = True
    reload_time: float = Field(default=0.5, gt=0)
    protected_pattern: str = "Router"

    # Application layout
    init_file: Optional[str] = None
    router_file: str = "router.py"
    framework: Dict[str, Union[str, List[Optional[str]]]] = Field(default_factory=dict)

    # Logging
    log_level: Optional[str] = None
    log_file: Optional[str] = None
    verbose: bool = False

    @model_validator(mode='after')
    def apply_derived_defaults(self) -> 'SpindleSettings':
        if not self.reload_classes:
            self.fork_for_class_load = False
        if self.reap_workers_quickly is None:
            self.reap_workers_quickly = self.environment == "development" and not self.cluster
        return self

    @property
    def testing(self) -> bool:
        return self.environment == "test"

    @property
    def forks(self) -> bool:
        """Whether fork isolation is in effect for this process."""
        return self.fork_for_class_load and not self.testing and forking_available()


class PathEntry(BaseModel):
    """
    A named load root: directory plus an optional glob of files to auto-load.
    """
    model_config = ConfigDict(frozen=True)

    name: str
    root: Path
    glob: Optional[str] = None

    @property
    def pattern(self) -> Optional[str]:
        if self.glob is None:
            return None
        return str(self.root / self.glob)


class LoadedUnitRecord(BaseModel):
    """
    Bookkeeping for one loaded source file.
    """
    path: str
    symbols: List[str] = Field(default_factory=list)
    modules: List[str] = Field(default_factory=list)
    mtime: Optional[float] = None


def settings_document(settings: SpindleSettings, **extra: Any) -> Dict[str, Any]:
    """Return the settings as a plain, YAML-safe mapping."""
    payload = settings.model_dump(mode="json")
    payload.update(extra)
    return payload
