# runner.py
from __future__ import annotations

import contextlib
import os
import signal
import subprocess
import sys
import threading
import time
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Union

from .config import DEPTH_ENV, RunOptions, local_bin_dir, nesting_depth
from .dag import GraphBuilder, plan_stages, validate_graph
from .errors import StuckRunError, TaskExecutionError, TaskweaveError
from .log import get_logger
from .model import ExecutionNode, NodeState, ParsedCommand, Task
from .parser import parse_args
from .patterns import PatternResolver
from .ui.console import Console, RawLogger

log = get_logger("taskweave.runner")

_POSIX = os.name != "nt"


@dataclass
class RunningTask:
    task: Task
    process: subprocess.Popen


# ----------------------------------------------------------------------
# Process primitives
# ----------------------------------------------------------------------

def _signal_process(proc: subprocess.Popen, sig: int) -> None:
    """Signal the task's whole process group so shell children go down with it."""
    if proc.poll() is not None:
        return
    if _POSIX:
        try:
            os.killpg(proc.pid, sig)
            return
        except (ProcessLookupError, PermissionError):
            pass
    with contextlib.suppress(OSError):
        if sig == getattr(signal, "SIGKILL", None):
            proc.kill()
        else:
            proc.terminate()


def _pump(stream, emit: Callable[[str], None]) -> None:
    try:
        for line in iter(stream.readline, ""):
            line = line.rstrip("\r\n")
            if line.strip():
                emit(line)
    finally:
        with contextlib.suppress(OSError):
            stream.close()


# ----------------------------------------------------------------------
# Executor
# ----------------------------------------------------------------------

class Executor:
    """
    Runs execution nodes as shell subprocesses, honoring dependencies.

    The instance owns the signal handlers and the table of live processes for
    one run. Use it as a context manager (or call start()/close()) so handlers
    are installed for the run and restored afterwards.
    """

    def __init__(
        self,
        options: Optional[RunOptions] = None,
        console: Optional[Console] = None,
        *,
        exit_fn: Callable[[int], None] = sys.exit,
    ):
        self.options = options or RunOptions()
        self.console = console or Console(quiet=self.options.quiet, prefix=self.options.prefix)
        self.nested = nesting_depth() is not None
        self.aborted = False
        self.states: Dict[str, NodeState] = {}
        self.failed: set[str] = set()
        self.failed_tasks: List[str] = []
        self._processes: Dict[int, RunningTask] = {}
        self._lock = threading.Lock()
        self._previous_handlers: Dict[int, object] = {}
        self._exit = exit_fn

    # ---- lifecycle ----

    def start(self) -> Executor:
        # signal.signal only works from the main thread.
        if threading.current_thread() is not threading.main_thread():
            return self
        for sig in (signal.SIGINT, signal.SIGTERM):
            self._previous_handlers[sig] = signal.signal(sig, self._on_signal)
        return self

    def close(self) -> None:
        for sig, handler in self._previous_handlers.items():
            signal.signal(sig, handler)
        self._previous_handlers.clear()

    def __enter__(self) -> Executor:
        return self.start()

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _on_signal(self, signum, frame) -> None:
        log.debug("received signal %s", signum)
        self.shutdown()

    # ---- process table ----

    def _track(self, running: RunningTask) -> None:
        with self._lock:
            self._processes[running.process.pid] = running

    def _untrack(self, pid: int) -> None:
        with self._lock:
            self._processes.pop(pid, None)

    def running_tasks(self) -> List[RunningTask]:
        with self._lock:
            return list(self._processes.values())

    def _stop_processes(self, announce: bool) -> None:
        """SIGTERM everything still tracked, then SIGKILL what survives the grace period."""
        running = self.running_tasks()
        for r in running:
            _signal_process(r.process, signal.SIGTERM)
            if announce and not r.task.is_direct and not self.nested:
                self.console.info(f"Stopped: {r.task.name}")

        deadline = time.monotonic() + self.options.grace_period
        while time.monotonic() < deadline:
            if all(r.process.poll() is not None for r in running):
                return
            time.sleep(0.05)

        for r in running:
            _signal_process(r.process, getattr(signal, "SIGKILL", signal.SIGTERM))

    def shutdown(self) -> None:
        """Stop every live task and exit with status 0. A second call is a no-op."""
        if self.aborted:
            return
        self.aborted = True

        running = self.running_tasks()
        if any(not r.task.is_direct for r in running) and not self.nested:
            self.console.info("Shutting down...")
        self._stop_processes(announce=True)
        self._exit(0)

    # ---- execution ----

    def _environment(self, cwd) -> Dict[str, str]:
        env = os.environ.copy()
        env.update(self.options.env or {})
        env["PATH"] = os.pathsep.join([str(local_bin_dir(cwd)), env.get("PATH", "")])
        env[DEPTH_ENV] = str((nesting_depth() or 0) + 1)
        return env

    def run_task(self, task: Task) -> None:
        """Run one task to completion. Raises TaskExecutionError on failure."""
        if not task.command.strip():
            log.debug("task %s has no command of its own", task.name)
            return
        if self.aborted:
            log.debug("run aborted; not starting %s", task.name)
            return

        plain = task.is_direct or self.nested
        channel = RawLogger(self.console) if plain else self.console.task_logger(task.name)
        if not plain:
            self.console.info(f"Running: {task.name}")

        cwd = self.options.workdir
        log.debug("spawn %s: %s (cwd=%s)", task.name, task.command, cwd)
        try:
            proc = subprocess.Popen(
                task.command,
                shell=True,
                cwd=str(cwd),
                env=self._environment(cwd),
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                errors="replace",
                bufsize=1,
                start_new_session=_POSIX,
            )
        except OSError as e:
            err = TaskExecutionError(task.name, task.command, reason=str(e))
            channel.error(f"Failed: {err}")
            self.failed_tasks.append(task.name)
            raise err from e

        self._track(RunningTask(task, proc))
        try:
            err_pump = threading.Thread(target=_pump, args=(proc.stderr, channel.error), daemon=True)
            err_pump.start()
            _pump(proc.stdout, channel.log)
            err_pump.join()
            code = proc.wait()
        finally:
            self._untrack(proc.pid)

        if code != 0:
            if self.aborted:
                return
            err = TaskExecutionError(task.name, task.command, exit_code=code)
            channel.error(f"Failed: {err}")
            self.failed_tasks.append(task.name)
            raise err

        if not plain:
            self.console.success(f"Completed: {task.name}")

    def _run_node(self, node: ExecutionNode) -> None:
        log.debug("starting node %s (%s)", node.id, ", ".join(node.names))
        errors: List[TaskExecutionError] = []

        if node.sequential:
            for task in node.tasks:
                if self.aborted:
                    break
                try:
                    self.run_task(task)
                except TaskExecutionError as e:
                    if not self.options.continue_on_error:
                        raise
                    errors.append(e)
        elif len(node.tasks) == 1:
            self.run_task(node.tasks[0])
        elif node.tasks:
            with ThreadPoolExecutor(max_workers=len(node.tasks)) as pool:
                futures = [pool.submit(self.run_task, t) for t in node.tasks]
                wait(futures)
            errors = [f.exception() for f in futures if f.exception() is not None]

        if errors:
            raise errors[0]

    def _can_run(self, node: ExecutionNode) -> bool:
        if self.states[node.id] is not NodeState.PENDING:
            return False
        return all(self.states.get(dep) is NodeState.COMPLETED for dep in node.dependencies)

    def execute(self, nodes: Sequence[ExecutionNode]) -> Dict[str, NodeState]:
        """
        Run `nodes` to completion.

        A node starts as soon as every node it depends on has completed.
        Returns the final state of every node.

        Raises:
            TaskExecutionError: a task failed and continue_on_error is off
            StuckRunError: nodes remain whose dependencies can never complete
        """
        nodes = list(nodes)
        self.states = {n.id: NodeState.PENDING for n in nodes}

        if not self.nested:
            for node in nodes:
                for task in node.tasks:
                    if not task.is_direct:
                        self.console.register_task(task.name)

        if not nodes:
            return {}

        in_flight: Dict = {}
        with ThreadPoolExecutor(max_workers=len(nodes)) as pool:
            while not self.aborted:
                for node in nodes:
                    if self._can_run(node):
                        self.states[node.id] = NodeState.RUNNING
                        in_flight[pool.submit(self._run_node, node)] = node

                if not in_flight:
                    stuck = [n.id for n in nodes if self.states[n.id] is NodeState.PENDING]
                    if stuck:
                        raise StuckRunError(stuck)
                    break

                # wait for one completion, then loop to schedule newly-ready nodes
                done, _ = wait(list(in_flight), return_when=FIRST_COMPLETED)
                for fut in done:
                    node = in_flight.pop(fut)
                    try:
                        fut.result()
                    except TaskweaveError:
                        self.states[node.id] = NodeState.FAILED
                        self.failed.add(node.id)
                        log.debug("node %s failed", node.id)
                        if not self.options.continue_on_error:
                            # siblings killed here must not report their own failures
                            self.aborted = True
                            self._stop_processes(announce=False)
                            raise
                    else:
                        self.states[node.id] = NodeState.COMPLETED
                        log.debug("node %s completed", node.id)

        return dict(self.states)


# ----------------------------------------------------------------------
# Public API
# ----------------------------------------------------------------------

def build_plan(parsed: ParsedCommand, manifest: Mapping[str, str]) -> List[ExecutionNode]:
    resolver = PatternResolver()
    targets = resolver.resolve(parsed.groups, list(manifest))
    nodes = GraphBuilder(resolver).build_graph(targets, manifest, parsed.command)
    validate_graph(nodes)
    return nodes


def run(
    args: Union[Sequence[str], ParsedCommand],
    manifest: Mapping[str, str],
    options: Optional[RunOptions] = None,
    *,
    console: Optional[Console] = None,
    dry_run: bool = False,
) -> Dict[str, NodeState]:
    """Parse, resolve, build and execute. Nothing is spawned if graph building fails."""
    parsed = args if isinstance(args, ParsedCommand) else parse_args(args)
    options = (options or RunOptions()).merged(**parsed.flags)
    console = console or Console(quiet=options.quiet, prefix=options.prefix)

    nodes = build_plan(parsed, manifest)

    if dry_run:
        console.print_plan(plan_stages(nodes))
        return {n.id: NodeState.PENDING for n in nodes}

    with Executor(options, console) as executor:
        states = executor.execute(nodes)
    if executor.failed_tasks:
        console.print_failures(executor.failed_tasks)
    return states
