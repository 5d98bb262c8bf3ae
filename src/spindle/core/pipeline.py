from __future__ import annotations

import time
from enum import Enum
from typing import Callable, Dict, List, Optional

import structlog

logger = structlog.get_logger(__name__)

StepAction = Callable[[], None]


class Relation(str, Enum):
    """Placement of a step relative to an anchor step."""

    BEFORE = "before"
    AFTER = "after"


class BootStep:
    """A named boot step with a single zero-argument entry point."""

    def __init__(self, pipeline: "BootPipeline", name: str, action: StepAction) -> None:
        self.pipeline = pipeline
        self.name = name
        self.action = action
        self.finished = False

    @property
    def position(self) -> Optional[int]:
        """Index in the pending list, or None once the step has run."""
        return self.pipeline.position(self.name)

    def before(self, anchor: str) -> None:
        """Run this step immediately before anchor."""
        self.pipeline.reorder(self.name, anchor, Relation.BEFORE)

    def after(self, anchor: str) -> None:
        """Run this step immediately after anchor."""
        self.pipeline.reorder(self.name, anchor, Relation.AFTER)

    def __repr__(self) -> str:
        return f"BootStep({self.name!r}, finished={self.finished})"


class BootPipeline:
    """Mutable ordered list of boot steps, executed strictly in order."""

    def __init__(self, verbose: bool = False) -> None:
        self.verbose = verbose
        self.started = False
        self.finished: List[str] = []
        self._pending: List[str] = []
        self._steps: Dict[str, BootStep] = {}

    def register(self, name: str, action: StepAction) -> BootStep:
        """Append a step to the end of the pending list."""
        if name in self._steps:
            raise ValueError(f"Boot step '{name}' is already registered.")

        step = BootStep(self, name, action)
        self._steps[name] = step
        self._pending.append(name)
        return step

    def step(self, name: str) -> Callable[[StepAction], StepAction]:
        """Decorator form of register()."""

        def decorator(action: StepAction) -> StepAction:
            self.register(name, action)
            return action

        return decorator

    def get(self, name: str) -> BootStep:
        if name not in self._steps:
            raise KeyError(f"Boot step '{name}' is not registered.")
        return self._steps[name]

    def reorder(self, name: str, anchor: str, relation: Relation | str) -> None:
        """Move name immediately before/after anchor; no-op unless both are pending."""
        relation = Relation(relation)
        if name == anchor or name not in self._pending or anchor not in self._pending:
            return

        self._pending.remove(name)
        index = self._pending.index(anchor)
        if relation == Relation.AFTER:
            index += 1
        self._pending.insert(index, name)

    def before(self, name: str, anchor: str) -> None:
        self.reorder(name, anchor, Relation.BEFORE)

    def after(self, name: str, anchor: str) -> None:
        self.reorder(name, anchor, Relation.AFTER)

    def position(self, name: str) -> Optional[int]:
        try:
            return self._pending.index(name)
        except ValueError:
            return None

    @property
    def pending(self) -> List[str]:
        return list(self._pending)

    def run_all(self) -> None:
        """Run pending steps in order until none remain. A raising step aborts the run."""
        self.started = True
        while self._pending:
            name = self._pending.pop(0)
            step = self._steps[name]
            started_at = time.monotonic()
            if self.verbose:
                logger.debug("boot_step_started", step=name)
            step.action()
            step.finished = True
            self.finished.append(name)
            if self.verbose:
                logger.debug("boot_step_finished", step=name, seconds=round(time.monotonic() - started_at, 4))

    def is_finished(self, name: str) -> bool:
        return name in self.finished

    def __contains__(self, name: str) -> bool:
        return name in self._steps

    def __len__(self) -> int:
        return len(self._steps)
