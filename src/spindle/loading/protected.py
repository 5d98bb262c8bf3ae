from __future__ import annotations

from dataclasses import dataclass
from types import ModuleType
from typing import Any, List

import structlog

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ProtectedKey:
    """Stable stand-in for a class key while its class is being reloaded."""

    name: str


class ClassKeyedDict(dict):
    """
    A dict keyed by reloadable classes.

    Register instances with ``BootContext.protect`` so their keys survive a
    reload: before the old classes are removed, keys become ProtectedKey
    placeholders; afterwards they are resolved against the fresh definitions.
    """

    def protect_keys(self, namespace: ModuleType) -> None:
        for key in list(self.keys()):
            if not isinstance(key, type):
                continue
            if getattr(namespace, key.__name__, None) is not key:
                continue
            self[ProtectedKey(key.__name__)] = self.pop(key)

    def restore_keys(self, namespace: ModuleType) -> List[str]:
        """Swap placeholders back to classes; returns the names that no longer resolve."""
        dropped: List[str] = []
        for key in list(self.keys()):
            if not isinstance(key, ProtectedKey):
                continue
            value: Any = self.pop(key)
            current = getattr(namespace, key.name, None)
            if current is None:
                dropped.append(key.name)
                logger.warning("protected_key_dropped", symbol=key.name)
                continue
            self[current] = value
        return dropped
