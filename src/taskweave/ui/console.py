"""Console output formatting for taskweave."""

from __future__ import annotations

import threading
from typing import Dict, List, Optional, Sequence

import click

from ..model import ExecutionNode

# Assigned round-robin in registration order.
COLORS = ["cyan", "green", "yellow", "blue", "magenta", "red", "bright_black", "white"]


class Console:
    """Centralized console output: per-task prefixed lines plus status messages."""

    def __init__(self, quiet: bool = False, prefix: bool | str = True, debug: bool = False):
        """
        Initialize console formatter.

        Args:
            quiet: Suppress task stdout, info and success lines (errors still print)
            prefix: True for `[name] |` prefixes, a string for a custom prefix,
                    False for bare lines
            debug: If True, show stack traces for errors
        """
        self.quiet = quiet
        self.prefix = prefix
        self.debug = debug
        self._colors: Dict[str, str] = {}
        self._width = 0
        self._lock = threading.Lock()

    def register_task(self, name: str) -> None:
        """Give `name` a stable color and widen the prefix column if needed."""
        if name in self._colors:
            return
        self._colors[name] = COLORS[len(self._colors) % len(COLORS)]
        self._width = max(self._width, len(name))

    def color_of(self, name: str) -> str:
        return self._colors.get(name, "white")

    def format_line(self, name: str, line: str) -> str:
        if self.prefix is False:
            return line
        color = self.color_of(name)
        if isinstance(self.prefix, str):
            return f"{click.style(self.prefix, fg=color)} {line}"
        label = f"[{name}]".ljust(self._width + 2)
        return f"{click.style(label, fg=color)} {click.style('|', fg='bright_black')} {line}"

    def _emit(self, text: str, err: bool = False) -> None:
        # Worker threads share the terminal; keep each line whole.
        with self._lock:
            click.echo(text, err=err)

    def log(self, name: str, message: str) -> None:
        """Print task stdout lines (suppressed when quiet)."""
        if self.quiet:
            return
        for line in message.splitlines():
            if line.strip():
                self._emit(self.format_line(name, line))

    def error(self, name: str, message: str) -> None:
        """Print task stderr lines in red. Never suppressed."""
        for line in message.splitlines():
            if line.strip():
                self._emit(self.format_line(name, click.style(line, fg="red")), err=True)

    def info(self, message: str) -> None:
        if not self.quiet:
            self._emit(f"{click.style('i', fg='blue')} {message}")

    def success(self, message: str) -> None:
        if not self.quiet:
            self._emit(f"{click.style('✓', fg='green')} {message}")

    def warn(self, message: str) -> None:
        self._emit(f"{click.style('!', fg='yellow')} {message}", err=True)

    def raw(self, line: str, err: bool = False) -> None:
        """Unprefixed passthrough used for the trailing command and nested runs."""
        if line.strip():
            self._emit(line, err=err)

    def task_logger(self, name: str) -> TaskLogger:
        self.register_task(name)
        return TaskLogger(self, name)

    def print_plan(self, levels: Sequence[Sequence[ExecutionNode]]) -> None:
        """Print a dry-run plan: one numbered stage per topological level."""
        for idx, level in enumerate(levels, start=1):
            self._emit(f"=== Stage {idx} ===")
            for node in level:
                for task in node.tasks:
                    command = task.command or "(no command)"
                    self._emit(f"  {node.id}  {task.name}: {command}")

    def print_tasks(self, tasks: Dict[str, str]) -> None:
        width = max((len(n) for n in tasks), default=0)
        for name, command in tasks.items():
            self._emit(f"{name.ljust(width)}  {command}")

    def print_failures(self, names: List[str]) -> None:
        self.warn(f"{len(names)} task(s) failed: {', '.join(names)}")

    def print_exception(self, exc: BaseException) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            traceback.print_exception(type(exc), exc, exc.__traceback__)
        click.echo(f"Error: {exc}", err=True)


class TaskLogger:
    """Output channel bound to one task name."""

    def __init__(self, console: Console, name: str):
        self.console = console
        self.name = name

    def log(self, message: str) -> None:
        self.console.log(self.name, message)

    def error(self, message: str) -> None:
        self.console.error(self.name, message)


class RawLogger:
    """Channel for the trailing command and nested runs: no prefix, no color."""

    def __init__(self, console: Console):
        self.console = console

    def log(self, message: str) -> None:
        self.console.raw(message)

    def error(self, message: str) -> None:
        self.console.raw(message, err=True)
