# errors.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional


class TaskweaveError(Exception):
    """Base class for every error the CLI turns into `Error: <message>` and exit 1."""


@dataclass
class ManifestError(TaskweaveError):
    message: str
    path: Optional[str] = None

    def __str__(self) -> str:
        if self.path:
            return f"{self.message} ({self.path})"
        return self.message


@dataclass
class ResolutionError(TaskweaveError):
    """A literal target name matched nothing in the manifest."""
    pattern: str

    def __str__(self) -> str:
        return f"Task not found: {self.pattern}"


@dataclass
class CycleError(TaskweaveError):
    """The dependency graph is not acyclic. `cycle` lists the members, first repeated last."""
    cycle: list[str] = field(default_factory=list)

    def __str__(self) -> str:
        return f"Circular dependency detected: {' -> '.join(self.cycle)}"


@dataclass
class StuckRunError(TaskweaveError):
    """Remaining nodes can never become runnable because a dependency failed."""
    node_ids: list[str] = field(default_factory=list)

    def __str__(self) -> str:
        return f"Cannot run nodes due to failed dependencies: {', '.join(self.node_ids)}"


@dataclass
class TaskExecutionError(TaskweaveError):
    task: str
    command: str
    exit_code: Optional[int] = None
    reason: Optional[str] = None

    def __str__(self) -> str:
        if self.exit_code is None:
            return f"[{self.task}] failed to start: {self.reason or self.command}"
        return f"[{self.task}] exited with code {self.exit_code}: {self.command}"


@dataclass
class UnsupportedNestingError(TaskweaveError):
    """A manifest entry chains one orchestration invocation into another."""
    task: str
    command: str

    def __str__(self) -> str:
        return (
            f"Task '{self.task}' nests an orchestration inside another one, "
            f"which is not supported: {self.command}"
        )
