import click
import pytest

from taskweave.model import ExecutionNode, Task
from taskweave.ui.console import COLORS, Console


def plain(text):
    return click.unstyle(text)


def test_default_prefix_is_padded_to_longest_name():
    c = Console()
    c.register_task("a")
    c.register_task("long-name")

    assert plain(c.format_line("a", "x")) == f"{'[a]'.ljust(11)} | x"
    assert plain(c.format_line("long-name", "x")) == "[long-name] | x"


def test_custom_prefix_replaces_name():
    c = Console(prefix=">>")
    c.register_task("a")
    assert plain(c.format_line("a", "x")) == ">> x"


def test_prefix_disabled():
    c = Console(prefix=False)
    c.register_task("a")
    assert c.format_line("a", "x") == "x"


def test_colors_are_round_robin_and_stable():
    c = Console()
    names = [f"t{i}" for i in range(len(COLORS) + 1)]
    for name in names:
        c.register_task(name)

    assert [c.color_of(n) for n in names[: len(COLORS)]] == COLORS
    assert c.color_of(names[-1]) == COLORS[0]

    c.register_task("t1")
    assert c.color_of("t1") == COLORS[1]


def test_log_splits_lines_and_drops_blanks(capsys):
    c = Console(prefix=False)
    c.log("t", "one\n\n  \ntwo")
    assert capsys.readouterr().out == "one\ntwo\n"


def test_quiet_suppresses_everything_but_errors(capsys):
    c = Console(quiet=True, prefix=False)
    c.log("t", "output")
    c.info("info")
    c.success("done")
    c.error("t", "broken")

    captured = capsys.readouterr()
    assert captured.out == ""
    assert captured.err == "broken\n"


def test_status_lines(capsys):
    c = Console()
    c.info("Running: build")
    c.success("Completed: build")
    c.warn("careful")

    captured = capsys.readouterr()
    assert captured.out == "i Running: build\n✓ Completed: build\n"
    assert captured.err == "! careful\n"


def test_task_logger_registers_name(capsys):
    c = Console()
    logger = c.task_logger("build")
    logger.log("compiled")
    logger.error("warning: slow")

    captured = capsys.readouterr()
    assert captured.out == "[build] | compiled\n"
    assert captured.err == "[build] | warning: slow\n"


def test_print_exception(capsys):
    Console().print_exception(RuntimeError("boom"))
    captured = capsys.readouterr()
    assert captured.err == "Error: boom\n"


def test_print_exception_debug_includes_traceback(capsys):
    try:
        raise RuntimeError("boom")
    except RuntimeError as e:
        Console(debug=True).print_exception(e)

    err = capsys.readouterr().err
    assert "Traceback" in err
    assert err.rstrip().endswith("Error: boom")


def test_print_plan(capsys):
    first = ExecutionNode(id="node_0", tasks=(Task("build", "make"),))
    second = ExecutionNode(id="node_1", tasks=(Task("all", ""),), dependencies=("node_0",))
    Console().print_plan([[first], [second]])

    assert capsys.readouterr().out.splitlines() == [
        "=== Stage 1 ===",
        "  node_0  build: make",
        "=== Stage 2 ===",
        "  node_1  all: (no command)",
    ]


@pytest.mark.parametrize("tasks", [{}, {"a": "echo a", "long": "echo long"}])
def test_print_tasks(capsys, tasks):
    Console().print_tasks(tasks)
    lines = capsys.readouterr().out.splitlines()
    assert len(lines) == len(tasks)
    if tasks:
        assert lines[0] == "a     echo a"
