from pathlib import Path
from typing import Dict, Iterator, List, Optional, Union

from spindle.core.models import PathEntry

DEFAULT_GLOB = "**/*.py"

COMPONENT_DIRS = {
    "view": "views",
    "model": "models",
    "helper": "helpers",
    "controller": "controllers",
    "mailer": "mailers",
    "part": "parts",
}


class PathRegistry:
    """
    Ordered table of named load roots consumed by the loader and the watcher.
    """
    def __init__(self):
        self._entries: Dict[str, PathEntry] = {}

    def push_path(self, name: str, root: Union[str, Path], glob: Optional[str] = DEFAULT_GLOB) -> PathEntry:
        """
        Register or overwrite a path entry. A glob of None disables auto-loading.
        """
        entry = PathEntry(name=name, root=Path(root), glob=glob)
        self._entries[name] = entry
        return entry

    def remove_path(self, name: str) -> None:
        self._entries.pop(name, None)

    def get(self, name: str) -> PathEntry:
        """
        Retrieve an entry by name. Raises KeyError if not found.
        """
        if name not in self._entries:
            raise KeyError(f"'{name}' not found in path registry.")
        return self._entries[name]

    def dir_for(self, name: str) -> Optional[Path]:
        entry = self._entries.get(name)
        return entry.root if entry else None

    def glob_for(self, name: str) -> Optional[str]:
        entry = self._entries.get(name)
        return entry.glob if entry else None

    def file_for(self, name: str) -> Optional[Path]:
        """Return root/glob for entries whose glob names a single file."""
        entry = self._entries.get(name)
        if entry is None or entry.glob is None:
            return None
        return entry.root / entry.glob

    def loadable(self, exclude: tuple = ()) -> List[PathEntry]:
        """Entries with a glob, in registration order."""
        return [e for e in self._entries.values() if e.glob is not None and e.name not in exclude]

    def __contains__(self, name: str) -> bool:
        return name in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[PathEntry]:
        return iter(list(self._entries.values()))


def push_default_framework(paths: PathRegistry, root: Path, router_file: str = "router.py") -> None:
    """Register the conventional application layout under root."""
    for component, directory in COMPONENT_DIRS.items():
        paths.push_path(component, root / "app" / directory)
    paths.push_path("application", root / "app" / "controllers", "application.py")
    paths.push_path("config", root / "config", None)
    paths.push_path("router", root / "config", router_file)
    paths.push_path("lib", root / "lib", None)
    paths.push_path("log", root / "log", None)
    paths.push_path("public", root / "public", None)
    paths.push_path("stylesheet", root / "public" / "stylesheets", None)
    paths.push_path("javascript", root / "public" / "javascripts", None)
    paths.push_path("image", root / "public" / "images", None)


def apply_framework_overrides(paths: PathRegistry, overrides: Dict[str, Union[str, List[Optional[str]]]]) -> None:
    """
    Apply framework overrides: ``name: dir`` or ``name: [dir, glob]``.
    """
    for name, value in overrides.items():
        parts = list(value) if isinstance(value, (list, tuple)) else [value]
        glob = parts[1] if len(parts) == 2 else DEFAULT_GLOB
        paths.push_path(name, parts[0], glob)
