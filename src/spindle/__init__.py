"""Spindle: boot, supervision and class reloading for Python application servers."""

from spindle.boot.steps import DEFAULT_STEPS, boot, create_context, register_default_steps
from spindle.core.context import BootContext
from spindle.core.hooks import HookPoint, LifecycleHooks
from spindle.core.models import RELOAD_EXIT_CODE, SpindleSettings
from spindle.core.pipeline import BootPipeline, BootStep
from spindle.loading.protected import ClassKeyedDict
from spindle.utils.diagnostics import BootError, LoadDiagnostic, UnresolvedReferencesError

__all__ = [
	"BootContext",
	"BootError",
	"BootPipeline",
	"BootStep",
	"ClassKeyedDict",
	"DEFAULT_STEPS",
	"HookPoint",
	"LifecycleHooks",
	"LoadDiagnostic",
	"RELOAD_EXIT_CODE",
	"SpindleSettings",
	"UnresolvedReferencesError",
	"boot",
	"create_context",
	"register_default_steps",
]
