import pytest
from click.testing import CliRunner

from taskweave import __version__
from taskweave.cli import main

from .conftest import posix_only

MANIFEST = """
[tasks]
build = "echo building"
test = "tw [build] -- echo testing"
loop-a = "tw [loop-b] -- echo a"
loop-b = "tw [loop-a] -- echo b"
"""


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def project(tmp_path, monkeypatch):
    (tmp_path / "taskweave.toml").write_text(MANIFEST, encoding="utf-8")
    monkeypatch.chdir(tmp_path)
    return tmp_path


def test_no_arguments_prints_help(runner, project):
    result = runner.invoke(main, [])
    assert result.exit_code == 0
    assert "Patterns:" in result.output


def test_version(runner):
    result = runner.invoke(main, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_list(runner, project):
    result = runner.invoke(main, ["--list"])
    assert result.exit_code == 0
    assert "build" in result.output
    assert "tw [build] -- echo testing" in result.output


@posix_only
def test_runs_tasks(runner, project):
    result = runner.invoke(main, ["[test]"])
    assert result.exit_code == 0, result.output
    assert result.output.index("building") < result.output.index("testing")


@posix_only
def test_trailing_command(runner, project):
    result = runner.invoke(main, ["[build]", "--", "echo", "finished"])
    assert result.exit_code == 0, result.output
    assert result.output.splitlines()[-1] == "finished"


@posix_only
def test_trailing_command_without_manifest(runner, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    result = runner.invoke(main, ["--", "echo", "hi"])
    assert result.exit_code == 0, result.output
    assert result.output == "hi\n"


@posix_only
def test_quiet(runner, project):
    result = runner.invoke(main, ["-q", "[build]"])
    assert result.exit_code == 0
    assert "building" not in result.output


@posix_only
def test_manifest_options_apply(runner, tmp_path, monkeypatch):
    (tmp_path / "taskweave.toml").write_text(
        '[tasks]\nhello = "echo hello"\n\n[options]\nprefix = ">"\n', encoding="utf-8"
    )
    monkeypatch.chdir(tmp_path)
    result = runner.invoke(main, ["[hello]"])
    assert "> hello" in result.output


def test_cycle_is_fatal(runner, project):
    result = runner.invoke(main, ["[loop-a]"])
    assert result.exit_code == 1
    assert "Error: Circular dependency detected" in result.output


def test_missing_task_is_fatal(runner, project):
    result = runner.invoke(main, ["[nope]"])
    assert result.exit_code == 1
    assert "Error: Task not found: nope" in result.output


def test_missing_manifest_is_fatal(runner, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    result = runner.invoke(main, ["[build]"])
    assert result.exit_code == 1
    assert "Error: No manifest found" in result.output


@posix_only
def test_failing_task_exits_one(runner, tmp_path, monkeypatch):
    (tmp_path / "taskweave.toml").write_text('[tasks]\nbad = "exit 4"\n', encoding="utf-8")
    monkeypatch.chdir(tmp_path)
    result = runner.invoke(main, ["[bad]"])
    assert result.exit_code == 1
    assert "Error: [bad] exited with code 4" in result.output


def test_dry_run(runner, project):
    result = runner.invoke(main, ["--dry-run", "[test]"])
    assert result.exit_code == 0
    assert "=== Stage 1 ===" in result.output
    assert "=== Stage 2 ===" in result.output


def test_explicit_manifest_and_cwd(runner, tmp_path):
    path = tmp_path / "custom.toml"
    path.write_text('[tasks]\nonly = "echo only"\n', encoding="utf-8")
    result = runner.invoke(main, ["--manifest", str(path), "--cwd", str(tmp_path), "--list"])
    assert result.exit_code == 0
    assert "only" in result.output
