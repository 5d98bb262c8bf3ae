from __future__ import annotations

import glob
import inspect
import linecache
import os
import re
import sys
import threading
import traceback
from pathlib import Path
from types import ModuleType
from typing import TYPE_CHECKING, Callable, Dict, Iterable, List, Optional, Set, Union

import structlog

from spindle.core.models import RELOAD_EXIT_CODE, LoadedUnitRecord
from spindle.utils.diagnostics import LoadDiagnostic, UnresolvedReferencesError

if TYPE_CHECKING:
    from spindle.core.context import BootContext

logger = structlog.get_logger(__name__)

NAMESPACE_NAME = "spindle_app"

PathLike = Union[str, Path]


def new_namespace(**seed: object) -> ModuleType:
    """Create the shared application namespace that unit files execute in."""
    namespace = ModuleType(NAMESPACE_NAME)
    for name, value in seed.items():
        setattr(namespace, name, value)
    return namespace


class UnitLoader:
    """
    Loads application source files into the shared namespace and tracks what
    each one declared so that it can be unloaded and reloaded later.
    """

    def __init__(self, context: "BootContext") -> None:
        self.context = context
        self.namespace = new_namespace(boot=context)
        self.records: Dict[str, LoadedUnitRecord] = {}
        self.mtimes: Dict[str, Optional[float]] = {}
        self.required: Set[str] = set()
        self.pending: List[str] = []
        self.diagnostics: Dict[str, LoadDiagnostic] = {}
        self._partial: Dict[str, Set[str]] = {}
        self._seeded = set(vars(self.namespace))
        self._protected = re.compile(context.settings.protected_pattern)
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load_file(self, path: PathLike, reload: bool = False) -> bool:
        """
        Execute one source file, recording the symbols and sub-modules it produced.

        Returns False when the file was already loaded (and this is not a
        reload) or failed with a syntax error. NameError and any other error
        raised by the file propagate.
        """
        file = str(path)
        if file in self.required and not reload:
            return False

        logger.debug("reloading_file" if reload else "loading_file", file=file)

        previous = self.records.get(file)
        if previous is not None:
            self._forget_modules(previous.modules)

        symbols_before = set(vars(self.namespace))
        modules_before = set(sys.modules)
        loaded = False

        try:
            self._execute(file)
            loaded = True
        except SyntaxError as exc:
            logger.error("syntax_error", file=file, line=exc.lineno, error=exc.msg)
            self.diagnostics[file] = LoadDiagnostic(
                file_path=file,
                error_code="ERR_SYNTAX",
                message=f"Cannot load because of syntax error: {exc.msg}",
                line_number=exc.lineno,
            )
        except NameError:
            partial = set(vars(self.namespace)) - symbols_before - self._seeded
            self._partial[file] = self._partial.get(file, set()) | partial
            raise
        finally:
            if self.context.settings.reload_classes:
                self.mtimes[file] = self._mtime(file)

        declared = set(vars(self.namespace)) - symbols_before - self._seeded
        declared |= {name for name in self._partial.pop(file, set()) if hasattr(self.namespace, name)}
        if previous is not None:
            declared |= {name for name in previous.symbols if hasattr(self.namespace, name)}

        self.records[file] = LoadedUnitRecord(
            path=file,
            symbols=sorted(name for name in declared if not name.startswith("__") and not self._imported(name)),
            modules=sorted(set(sys.modules) - modules_before),
            mtime=self.mtimes.get(file),
        )

        if loaded:
            self.required.add(file)
            self.diagnostics.pop(file, None)
        return loaded

    def run_file(self, path: PathLike) -> bool:
        """Execute a configuration file unconditionally, even if it ran before."""
        return self.load_file(path, reload=True)

    def load_many(self, paths: Iterable[PathLike]) -> None:
        """
        Load every file matched by paths (files or glob patterns).

        Files that fail on a forward reference are deferred and retried by
        resolve_pending() once everything else had a chance to load.
        """
        for path in paths:
            for file in self.expand(path):
                try:
                    self.load_file(file)
                except NameError as exc:
                    logger.debug("deferred_file", file=file, error=str(exc))
                    if file not in self.pending:
                        self.pending.append(file)

        self.resolve_pending()

    def resolve_pending(self) -> None:
        """
        Retry deferred files until the queue is empty.

        Every pass must shrink the queue; a pass that makes no progress is
        fatal and reports every file still unresolved.
        """
        self.pending = list(dict.fromkeys(self.pending))

        while self.pending:
            size_at_start = len(self.pending)
            errors: Dict[str, NameError] = {}

            for file in self.pending:
                try:
                    self.load_file(file)
                except NameError as exc:
                    errors[file] = exc

            self.pending = [file for file in self.pending if file in errors]

            if self.pending and len(self.pending) == size_at_start:
                self._fail_unresolved(errors)

    def _fail_unresolved(self, errors: Dict[str, NameError]) -> None:
        diagnostics: List[LoadDiagnostic] = []
        for file, exc in errors.items():
            trace = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
            logger.critical("could_not_load", file=file, error=str(exc), error_class=type(exc).__name__, trace=trace)
            diagnostics.append(
                LoadDiagnostic(
                    file_path=file,
                    error_code="ERR_UNRESOLVED_NAME",
                    message=f"{exc} - ({type(exc).__name__})",
                    severity="critical",
                    line_number=self._error_line(file, exc),
                    trace=trace,
                )
            )
        self.pending = []
        raise UnresolvedReferencesError(diagnostics)

    # ------------------------------------------------------------------
    # Reloading
    # ------------------------------------------------------------------

    def reload(self, path: PathLike) -> None:
        """
        Reload one file.

        Inside a forked spawner the whole worker is recycled instead: it exits
        with the reload code and the master forks a fresh one.
        """
        with self._lock:
            supervisor = self.context.supervisor
            if supervisor.is_spawner:
                supervisor.reap_workers(RELOAD_EXIT_CODE)
                return

            self.remove_symbols_in_file(path, then=lambda file: self.load_file(file, reload=True))

    def unload(self, path: PathLike) -> None:
        """Remove everything the file declared, without loading it again."""
        with self._lock:
            self.remove_symbols_in_file(path)

    def remove_symbols_in_file(self, path: PathLike, then: Optional[Callable[[str], object]] = None) -> None:
        """
        Remove the symbols declared by a file, keeping protected names.

        Registered class-keyed registries are protected first and restored
        after ``then`` (usually the re-load) has run.
        """
        file = str(path)
        registries = list(self.context.key_registries)
        for registry in registries:
            registry.protect_keys(self.namespace)

        try:
            record = self.records.get(file)
            if record is not None:
                kept: List[str] = []
                for name in record.symbols:
                    if self.is_protected(name):
                        kept.append(name)
                        continue
                    self.remove_symbol(name)
                record.symbols = kept
                self._forget_modules(record.modules)

            self.required.discard(file)
            if then is not None:
                then(file)
        finally:
            for registry in registries:
                registry.restore_keys(self.namespace)

    def remove_symbol(self, name: str) -> None:
        """
        Remove a symbol from the namespace.

        Classes are also pruned from the ``_subclasses_list`` of any base class
        that tracks its subclasses that way.
        """
        value = vars(self.namespace).pop(name, None)
        if value is None:
            logger.debug("symbol_not_found", symbol=name)
            return

        if isinstance(value, type):
            for base in value.__mro__[1:]:
                subclasses = getattr(base, "_subclasses_list", None)
                if isinstance(subclasses, list):
                    subclasses[:] = [entry for entry in subclasses if entry is not value and entry != name]

        logger.debug("removed_symbol", symbol=name)

    def is_protected(self, name: str) -> bool:
        return bool(self._protected.search(name))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def loaded_symbols(self) -> Set[str]:
        symbols: Set[str] = set()
        for record in self.records.values():
            symbols.update(record.symbols)
        return symbols

    def is_loaded(self, path: PathLike) -> bool:
        return str(path) in self.required

    @staticmethod
    def expand(path: PathLike) -> List[str]:
        return [file for file in sorted(glob.glob(str(path), recursive=True)) if os.path.isfile(file)]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _execute(self, file: str) -> None:
        source = Path(file).read_bytes()
        linecache.checkcache(file)
        code = compile(source, file, "exec")
        scope = vars(self.namespace)
        scope["__file__"] = file
        exec(code, scope)

    def _imported(self, name: str) -> bool:
        """Modules and objects defined elsewhere belong to no file; other files may import them too."""
        value = getattr(self.namespace, name, None)
        if inspect.ismodule(value):
            return True
        if inspect.isclass(value) or inspect.isroutine(value):
            return getattr(value, "__module__", NAMESPACE_NAME) != NAMESPACE_NAME
        return False

    @staticmethod
    def _forget_modules(modules: Iterable[str]) -> None:
        for module_name in modules:
            sys.modules.pop(module_name, None)

    @staticmethod
    def _mtime(file: str) -> Optional[float]:
        try:
            return os.path.getmtime(file)
        except OSError:
            return None

    @staticmethod
    def _error_line(file: str, exc: BaseException) -> Optional[int]:
        for frame in reversed(traceback.extract_tb(exc.__traceback__)):
            if frame.filename == file:
                return frame.lineno
        return None
