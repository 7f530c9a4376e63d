# patterns.py
from __future__ import annotations

import re
from fnmatch import fnmatchcase
from typing import Iterable, List, Sequence

from .errors import ResolutionError
from .model import PatternGroup, Target

_BRACES = re.compile(r"\{([^{}]*)\}")
_GLOB_CHARS = ("*", "?", "[", "{")


def expand_braces(pattern: str) -> List[str]:
    """`build:{js,css}` -> ["build:js", "build:css"]; nested groups expand innermost first."""
    m = _BRACES.search(pattern)
    if not m:
        return [pattern]
    head, tail = pattern[: m.start()], pattern[m.end():]
    expanded: List[str] = []
    for option in m.group(1).split(","):
        expanded.extend(expand_braces(f"{head}{option}{tail}"))
    return expanded


def is_glob(pattern: str) -> bool:
    return any(ch in pattern for ch in _GLOB_CHARS)


def match(pattern: str, names: Iterable[str]) -> List[str]:
    """Manifest names matching `pattern`, in manifest order."""
    alternatives = expand_braces(pattern)
    return [n for n in names if any(fnmatchcase(n, alt) for alt in alternatives)]


def _dedupe(names: Iterable[str]) -> List[str]:
    seen: set[str] = set()
    out: List[str] = []
    for n in names:
        if n not in seen:
            seen.add(n)
            out.append(n)
    return out


class PatternResolver:
    """
    Expands include/exclude patterns into concrete manifest names.

    Patterns apply left to right, so `[test:*,!test:e2e]` selects every
    `test:` task except the e2e one while `[!test:e2e,test:*]` selects them all.
    """

    def _find(self, pattern: str, names: Sequence[str]) -> List[str]:
        if is_glob(pattern):
            return match(pattern, names)
        if pattern in names:
            return [pattern]
        raise ResolutionError(pattern)

    def _exclude(self, pattern: str, selected: List[str]) -> List[str]:
        if is_glob(pattern):
            drop = set(match(pattern, selected))
            return [n for n in selected if n not in drop]
        return [n for n in selected if n != pattern]

    def resolve_names(self, patterns: Sequence[str], names: Sequence[str]) -> List[str]:
        selected: List[str] = []
        for pattern in patterns:
            if pattern.startswith("!"):
                selected = self._exclude(pattern[1:], selected)
            else:
                selected.extend(self._find(pattern, names))
        return _dedupe(selected)

    def resolve(self, groups: Sequence[PatternGroup], names: Sequence[str]) -> List[Target]:
        """
        Resolve command-line groups into ordered, deduplicated targets.

        A chained group resolves on its own (its exclusions only see its own
        selections) and every name it yields carries the group's step index.
        Top-level exclusions apply to everything selected so far.
        """
        targets: List[Target] = []
        for group in groups:
            if group.step is not None:
                for name in self.resolve_names(group.patterns, names):
                    targets.append(Target(name, group.step))
                continue
            for pattern in group.patterns:
                if pattern.startswith("!"):
                    keep = set(self._exclude(pattern[1:], [t.name for t in targets]))
                    targets = [t for t in targets if t.name in keep]
                else:
                    targets.extend(Target(n) for n in self._find(pattern, names))

        seen: set[str] = set()
        out: List[Target] = []
        for t in targets:
            if t.name not in seen:
                seen.add(t.name)
                out.append(t)
        return out
