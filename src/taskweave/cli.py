# cli.py
from __future__ import annotations

import sys

import click

from taskweave import __version__
from taskweave import log as logsetup
from taskweave.config import RunOptions
from taskweave.manifest import Manifest, find_manifest, load_manifest
from taskweave.parser import SEPARATOR, parse_args
from taskweave.runner import run
from taskweave.ui.console import Console

EPILOG = """\b
Patterns:
  [test:*]              Run all tasks matching test:*
  [build:*,!build:slow] Run build tasks except build:slow
  [a]->[b]->[c]         Run a, then b, then c
  [a,b]->[c,d]          Run a and b in parallel, then c and d

\b
Examples:
  tw [test:*]                   Run all test tasks
  tw [build] -- python app.py   Run build, then run a command
  tw [lint,test]->[deploy]      Lint and test, then deploy
  tw [test:*] -q -- echo done   Run tests quietly
"""


class RunCommand(click.Command):
    """Keeps everything after a standalone `--` as the trailing shell command."""

    def parse_args(self, ctx: click.Context, args: list[str]) -> list[str]:
        if SEPARATOR in args:
            idx = args.index(SEPARATOR)
            ctx.meta["taskweave.command"] = args[idx + 1:]
            args = args[:idx]
        return super().parse_args(ctx, args)


def _load(manifest_path: str | None, cwd: str | None, has_patterns: bool) -> Manifest:
    # A bare `tw -- cmd` does not need a manifest at all.
    if manifest_path is None and not has_patterns and find_manifest(cwd or ".") is None:
        return Manifest()
    return load_manifest(manifest_path, cwd or ".")


@click.command(
    cls=RunCommand,
    epilog=EPILOG,
    context_settings={"help_option_names": ["-h", "--help"]},
)
@click.argument("patterns", nargs=-1, type=click.UNPROCESSED)
@click.option("-q", "--quiet", is_flag=True, default=False, help="Suppress task output")
@click.option("-c", "--continue", "continue_on_error", is_flag=True, default=False, help="Continue on error")
@click.option("--prefix", default=None, help="Custom output prefix")
@click.option("--no-prefix", is_flag=True, default=False, help="Disable output prefixes")
@click.option("--cwd", default=None, type=click.Path(file_okay=False), help="Working directory for tasks")
@click.option("--manifest", "manifest_path", default=None, type=click.Path(dir_okay=False), help="Manifest file (defaults to taskweave.toml, pyproject.toml or package.json)")
@click.option("--list", "list_tasks", is_flag=True, default=False, help="List manifest tasks and exit")
@click.option("--dry-run", is_flag=True, default=False, help="Print the execution plan without running it")
@click.option("--debug", is_flag=True, default=False, help="Enable debug mode (show stack traces and graph tracing)")
@click.version_option(__version__, prog_name="taskweave")
@click.pass_context
def main(ctx, patterns, quiet, continue_on_error, prefix, no_prefix, cwd, manifest_path, list_tasks, dry_run, debug):
    """taskweave - run manifest tasks in parallel, in order, or both."""
    logsetup.configure(debug=debug)
    console = Console(debug=debug)

    trailing = ctx.meta.get("taskweave.command")
    command = " ".join(trailing) if trailing else None

    if not patterns and command is None and not list_tasks:
        click.echo(ctx.get_help())
        return

    try:
        manifest = _load(manifest_path, cwd, bool(patterns) or list_tasks)

        if list_tasks:
            console.print_tasks(manifest.tasks)
            return

        options = RunOptions.from_manifest(manifest.options).merged(
            quiet=quiet or None,
            continue_on_error=continue_on_error or None,
            prefix=False if no_prefix else prefix,
            cwd=cwd,
        )
        console = Console(quiet=options.quiet, prefix=options.prefix, debug=debug)

        parsed = parse_args(list(patterns))
        parsed.command = command
        run(parsed, manifest.tasks, options, console=console, dry_run=dry_run)

    except KeyboardInterrupt:
        console.warn("Interrupted by user")
        sys.exit(130)
    except Exception as e:
        console.print_exception(e)
        sys.exit(1)


if __name__ == "__main__":
    main()
