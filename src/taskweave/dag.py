# dag.py
from __future__ import annotations

import itertools
import re
from collections import deque
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple, Union

from .errors import CycleError, ResolutionError, UnsupportedNestingError
from .log import get_logger
from .model import DIRECT_COMMAND_TASK, ExecutionNode, Target, Task
from .parser import split_group
from .patterns import PatternResolver

log = get_logger("taskweave.dag")

COMMAND_NODE = "__command__"

# `tw ...`, `taskweave ...`, `/path/to/bin/tw ...`, `python -m taskweave ...`
_INVOCATION = re.compile(
    r"""^(?:
        (?:tw|taskweave)
      | \S*[/\\](?:tw|taskweave)(?:\.exe)?
      | \S*python[\d.]*(?:\.exe)?\s+-m\s+taskweave
    )(?:\s+(?P<rest>.*))?$""",
    re.VERBOSE | re.DOTALL,
)
_SEPARATOR = re.compile(r"(?:^|\s)--(?=\s|$)")
# command-list operators: &&, ||, ;, | and &
_SHELL_LIST = re.compile(r"&&|\|\||[;|&\n]")


@dataclass(frozen=True)
class LeafTask:
    """A manifest command that runs as-is."""
    command: str


@dataclass(frozen=True)
class CompositeTask:
    """A manifest command that is itself an invocation: dependency patterns plus an optional final command."""
    patterns: Tuple[str, ...]
    command: Optional[str] = None


ParsedEntry = Union[LeafTask, CompositeTask]


def _closing_bracket(text: str) -> int:
    depth = 0
    for i, ch in enumerate(text):
        if ch == "[":
            depth += 1
        elif ch == "]":
            depth -= 1
            if depth == 0:
                return i
    return -1


def _split_trailing(text: str) -> Optional[str]:
    m = _SEPARATOR.search(text)
    if not m:
        return None
    return text[m.end():].strip() or None


def classify_command(name: str, command: str) -> ParsedEntry:
    """
    Decide whether a manifest command is a nested invocation and unwrap it.

        "tw [a, b] -- vite dev"  -> CompositeTask(("a", "b"), "vite dev")
        "tw -- echo hi"          -> CompositeTask((), "echo hi")
        "tw [a,b]"               -> CompositeTask(("a", "b"), None)
        "pytest -q"              -> LeafTask("pytest -q")

    Group entries split like command-line groups, so `tw [build:{js,css}]`
    keeps its brace alternation.

    Raises UnsupportedNestingError for a `->` chain inside the nested group
    or when any `&&`, `||`, `;`, `|` or `&` segment of the final command is
    itself another invocation.
    """
    m = _INVOCATION.match(command.strip())
    rest = (m.group("rest") or "").strip() if m else ""
    if not rest:
        return LeafTask(command)

    if _SEPARATOR.match(rest):
        final = _split_trailing(rest)
        patterns: Tuple[str, ...] = ()
    elif rest.startswith("["):
        end = _closing_bracket(rest)
        if end < 0:
            return LeafTask(command)
        group, after = rest[1:end], rest[end + 1:]
        if after.lstrip().startswith("->"):
            raise UnsupportedNestingError(name, command)
        patterns = tuple(split_group(group))
        final = _split_trailing(after)
    else:
        return LeafTask(command)

    if final is not None and _invokes_orchestrator(name, final):
        raise UnsupportedNestingError(name, command)
    return CompositeTask(patterns, final)


def _invokes_orchestrator(name: str, command: str) -> bool:
    # Shell quoting is not interpreted; `echo "a; tw [b]"` counts as an invocation.
    for segment in _SHELL_LIST.split(command):
        segment = segment.strip()
        if not segment:
            continue
        try:
            if isinstance(classify_command(name, segment), CompositeTask):
                return True
        except UnsupportedNestingError:
            return True
    return False


class _Graph:
    """Nodes addressed by string id; edges point from dependent to dependency."""

    def __init__(self) -> None:
        self.tasks: Dict[str, Task] = {}
        self._edges: Dict[str, Dict[str, None]] = {}

    def set_node(self, key: str, task: Optional[Task] = None) -> None:
        self._edges.setdefault(key, {})
        if task is not None:
            self.tasks[key] = task

    def has_node(self, key: str) -> bool:
        return key in self._edges

    def set_edge(self, src: str, dst: str) -> None:
        self.set_node(src)
        self.set_node(dst)
        self._edges[src][dst] = None

    def successors(self, key: str) -> List[str]:
        return list(self._edges.get(key, {}))

    def nodes(self) -> List[str]:
        return list(self._edges)

    def edge_count(self) -> int:
        return sum(len(v) for v in self._edges.values())


def find_cycle(graph: _Graph) -> Optional[List[str]]:
    """
    Three-color DFS. Returns the first cycle found as
    [n0, n1, ..., n0], or None when the graph is acyclic.
    """
    WHITE, GRAY, BLACK = 0, 1, 2
    color: Dict[str, int] = {n: WHITE for n in graph.nodes()}

    for root in graph.nodes():
        if color[root] != WHITE:
            continue
        color[root] = GRAY
        path = [root]
        pending = [iter(graph.successors(root))]

        while pending:
            for dep in pending[-1]:
                if color[dep] == GRAY:
                    return path[path.index(dep):] + [dep]
                if color[dep] == WHITE:
                    color[dep] = GRAY
                    path.append(dep)
                    pending.append(iter(graph.successors(dep)))
                    break
            else:
                color[path.pop()] = BLACK
                pending.pop()
    return None


def _dependency_first(graph: _Graph) -> List[str]:
    """Post-order walk: every node comes after all of its successors."""
    order: List[str] = []
    seen: Set[str] = set()

    for root in graph.nodes():
        if root in seen:
            continue
        seen.add(root)
        stack = [(root, iter(graph.successors(root)))]

        while stack:
            node, deps = stack[-1]
            for dep in deps:
                if dep not in seen:
                    seen.add(dep)
                    stack.append((dep, iter(graph.successors(dep))))
                    break
            else:
                stack.pop()
                order.append(node)
    return order


def sequential_groups(targets: Sequence[Target]) -> List[List[str]]:
    """
    Group chained targets by their step index.

    Untagged targets form one trailing group when any chain is present,
    and impose no ordering at all otherwise.
    """
    if not any(t.group is not None for t in targets):
        return [[t.name for t in targets]] if targets else []

    by_step: Dict[int, List[str]] = {}
    loose: List[str] = []
    for t in targets:
        if t.group is None:
            loose.append(t.name)
        else:
            by_step.setdefault(t.group, []).append(t.name)

    groups = [by_step[i] for i in sorted(by_step) if by_step[i]]
    if loose:
        groups.append(loose)
    return groups


class GraphBuilder:
    def __init__(self, resolver: Optional[PatternResolver] = None):
        self.resolver = resolver or PatternResolver()
        self._ids = itertools.count()

    def _next_id(self) -> str:
        return f"node_{next(self._ids)}"

    def build_graph(
        self,
        targets: Sequence[Union[Target, str]],
        manifest: Mapping[str, str],
        command: Optional[str] = None,
    ) -> List[ExecutionNode]:
        """
        Build execution nodes for `targets` and everything they pull in.

        Manifest entries whose command is itself an invocation (`tw [deps] -- cmd`)
        contribute their dependencies recursively. Each distinct task name yields
        exactly one node no matter how many dependents reach it.

        Raises:
            ResolutionError: a top-level target is not in the manifest
            CycleError: the discovered dependencies form a cycle
            UnsupportedNestingError: see classify_command
        """
        targets = [Target(t) if isinstance(t, str) else t for t in targets]
        names = list(manifest)
        graph = _Graph()
        parsed: Dict[str, ParsedEntry] = {}

        log.debug("build_graph targets=%s command=%r", [t.name for t in targets], command)

        def process(root: str) -> None:
            # depth-first, one visited set per top-level target
            visited: Set[str] = set()
            stack = [root]
            while stack:
                name = stack.pop()
                if name in visited:
                    log.debug("already visited %s on this path", name)
                    continue
                visited.add(name)

                if name not in manifest:
                    log.warning("Dependency %r not found in manifest; skipping", name)
                    continue

                entry = parsed.get(name)
                if entry is None:
                    entry = parsed[name] = classify_command(name, manifest[name])

                if isinstance(entry, LeafTask):
                    graph.set_node(name, Task(name=name, command=entry.command))
                    continue

                graph.set_node(name, Task(name=name, command=entry.command or ""))
                try:
                    deps = self.resolver.resolve_names(entry.patterns, names)
                except ResolutionError as e:
                    log.warning("Could not resolve dependencies of %s: %s", name, e)
                    deps = [p for p in entry.patterns if p in manifest]

                for dep in deps:
                    log.debug("edge %s -> %s", name, dep)
                    graph.set_edge(name, dep)
                stack.extend(reversed(deps))

        for t in targets:
            if t.name not in manifest:
                raise ResolutionError(t.name)
            process(t.name)

        groups = sequential_groups(targets)
        for prev, current in zip(groups, groups[1:]):
            for after in current:
                for before in prev:
                    if graph.has_node(after) and graph.has_node(before):
                        log.debug("sequential edge %s -> %s", after, before)
                        graph.set_edge(after, before)

        if command and targets:
            graph.set_node(COMMAND_NODE, Task(name=DIRECT_COMMAND_TASK, command=command))
            for t in targets:
                if graph.has_node(t.name):
                    graph.set_edge(COMMAND_NODE, t.name)

        cycle = find_cycle(graph)
        if cycle:
            raise CycleError(cycle)

        nodes: List[ExecutionNode] = []
        node_ids: Dict[str, str] = {}
        for key in _dependency_first(graph):
            task = graph.tasks.get(key)
            if task is None:
                continue
            deps = tuple(node_ids[d] for d in graph.successors(key) if d in node_ids)
            node = ExecutionNode(id=self._next_id(), tasks=(task,), dependencies=deps)
            log.debug("node %s: %s depends on %s", node.id, key, list(deps))
            nodes.append(node)
            node_ids[key] = node.id

        if not targets and command:
            nodes.append(
                ExecutionNode(
                    id=self._next_id(),
                    tasks=(Task(name=DIRECT_COMMAND_TASK, command=command),),
                )
            )

        log.debug("built %d node(s), %d edge(s)", len(nodes), graph.edge_count())
        return nodes


def _node_graph(nodes: Iterable[ExecutionNode]) -> _Graph:
    graph = _Graph()
    for node in nodes:
        graph.set_node(node.id)
    for node in nodes:
        for dep in node.dependencies:
            graph.set_edge(node.id, dep)
    return graph


def validate_graph(nodes: Sequence[ExecutionNode]) -> None:
    """Re-check a node list for cycles over node ids, self-loops included."""
    cycle = find_cycle(_node_graph(nodes))
    if cycle:
        raise CycleError(cycle)


def plan_stages(nodes: Sequence[ExecutionNode]) -> List[List[ExecutionNode]]:
    """
    Convert nodes into topological "levels" (stages).
    Each stage can run in parallel once the previous one has completed.
    """
    by_id = {n.id: n for n in nodes}
    indeg: Dict[str, int] = {n.id: 0 for n in nodes}
    dependents: Dict[str, List[str]] = {n.id: [] for n in nodes}
    for n in nodes:
        for dep in n.dependencies:
            if dep in by_id:
                indeg[n.id] += 1
                dependents[dep].append(n.id)

    q = deque(n.id for n in nodes if indeg[n.id] == 0)
    levels: List[List[ExecutionNode]] = []
    processed = 0

    while q:
        level: List[ExecutionNode] = []
        for _ in range(len(q)):
            node_id = q.popleft()
            level.append(by_id[node_id])
            processed += 1
            for child in dependents[node_id]:
                indeg[child] -= 1
                if indeg[child] == 0:
                    q.append(child)
        levels.append(level)

    if processed != len(nodes):
        remaining = sorted(n for n, d in indeg.items() if d > 0)
        raise CycleError(remaining)

    return levels
