from __future__ import annotations

import sys
from pathlib import Path

import pytest

from taskweave.config import DEPTH_ENV, RunOptions
from taskweave.ui.console import Console

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="uses /bin/sh commands")


@pytest.fixture(autouse=True)
def _top_level_run(monkeypatch):
    # Tests may themselves run under a taskweave task.
    monkeypatch.delenv(DEPTH_ENV, raising=False)


@pytest.fixture
def options(tmp_path: Path) -> RunOptions:
    return RunOptions(cwd=str(tmp_path), grace_period=0.5)


@pytest.fixture
def console() -> Console:
    return Console()


def names_by_id(nodes):
    return {n.id: n.tasks[0].name for n in nodes if n.tasks}


def node_named(nodes, name):
    matches = [n for n in nodes if n.tasks and n.tasks[0].name == name]
    assert len(matches) == 1, f"expected one node for {name}, got {len(matches)}"
    return matches[0]


def dependency_names(nodes, name):
    ids = names_by_id(nodes)
    return sorted(ids[d] for d in node_named(nodes, name).dependencies)
