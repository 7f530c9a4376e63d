# model.py
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Optional, Tuple

# Task name given to the synthetic node built from a trailing `-- command`.
DIRECT_COMMAND_TASK = "command"


@dataclass(frozen=True)
class Task:
    """
    One runnable shell command resolved from the manifest.

    `command` is the final string handed to the shell, after any nested
    orchestration prefix (`tw [deps] -- ...`) has been unwrapped. An empty
    command marks a pure aggregator entry such as `tw [a,b]`.
    """
    name: str
    command: str
    dependencies: Tuple[str, ...] = ()

    @property
    def is_direct(self) -> bool:
        return self.name == DIRECT_COMMAND_TASK


@dataclass(frozen=True)
class ExecutionNode:
    """
    A scheduling unit: one or more tasks plus the ids of nodes that must
    complete first.

    sequential=True runs `tasks` one at a time in listed order,
    otherwise they run concurrently.
    """
    id: str
    tasks: Tuple[Task, ...]
    dependencies: Tuple[str, ...] = ()
    sequential: bool = False

    @property
    def names(self) -> list[str]:
        return [t.name for t in self.tasks]


@dataclass(frozen=True)
class Target:
    """A resolved top-level task name, optionally tagged with its `->` chain position."""
    name: str
    group: Optional[int] = None


@dataclass(frozen=True)
class PatternGroup:
    """One bracketed group from the command line: `[a,b]` or one part of `[a]->[b]`."""
    patterns: Tuple[str, ...]
    step: Optional[int] = None


class NodeState(str, enum.Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class ParsedCommand:
    groups: list[PatternGroup] = field(default_factory=list)
    command: Optional[str] = None
    flags: dict = field(default_factory=dict)

    @property
    def patterns(self) -> list[str]:
        return [p for g in self.groups for p in g.patterns]
