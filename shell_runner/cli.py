"""Command-line entry point.

Examples:
  shell-runner --stream -- ls -la
  shell-runner --workdir /srv/app --run-as deploy -- ./migrate.sh
  shell-runner --options task.json --stream
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from pydantic import ValidationError

from shell_runner.core.config import RunnerSettings
from shell_runner.core.errors import ChildNonZeroExitError, RunnerError
from shell_runner.identity import IdentityProbe
from shell_runner.runner import TaskRunner
from shell_runner.task import SOURCE_SYSTEM, STDERR, Task, TaskOptions

EXIT_FAILURE = 1
EXIT_USAGE = 2


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="shell-runner", description="Run a shell command as a task.")
    source = p.add_mutually_exclusive_group()
    source.add_argument("--json", help="task options as a JSON document")
    source.add_argument("--options", type=Path, help="path to a JSON task options file")
    p.add_argument("--stream", action="store_true", help="print output lines as they arrive")
    p.add_argument("--run-as", default=None, help="run the command as this user via sudo")
    p.add_argument("--workdir", default=None, help="directory to run the command in")
    p.add_argument(
        "--skip-errors",
        action="store_true",
        help="keep streaming past unreadable output lines",
    )
    p.add_argument(
        "--raw",
        action="store_true",
        help="pass arguments to the shell without quoting",
    )
    p.add_argument("command", nargs=argparse.REMAINDER, help="command and arguments")
    return p


def _print_line(stream_kind: int, line: str, source: int) -> None:
    out = sys.stderr if stream_kind == STDERR or source == SOURCE_SYSTEM else sys.stdout
    prefix = "[system] " if source == SOURCE_SYSTEM else ""
    print(f"{prefix}{line}", file=out, flush=True)


def _build_options(ns: argparse.Namespace) -> TaskOptions:
    if ns.json is not None:
        return TaskOptions.model_validate_json(ns.json)
    if ns.options is not None:
        return TaskOptions.model_validate_json(ns.options.read_text(encoding="utf-8"))

    command = list(ns.command)
    if command[:1] == ["--"]:
        command = command[1:]
    if not command:
        raise ValueError("a command is required (or pass --json / --options).")
    return TaskOptions(command=command[0], arguments=command[1:])


def build_task(ns: argparse.Namespace, *, settings: RunnerSettings) -> Task:
    """Builds the task described by parsed arguments; flags override file options."""

    options = _build_options(ns)
    updates: dict[str, object] = {}
    if ns.run_as is not None:
        updates["run_as"] = ns.run_as
    if ns.workdir is not None:
        updates["working_dir"] = ns.workdir
    if ns.raw:
        updates["quote_arguments"] = False
    if updates:
        options = options.model_copy(update=updates)

    task = Task.from_options(options, probe=IdentityProbe(settings=settings), settings=settings)
    if ns.skip_errors:
        task = task.with_skip_error()
    if ns.stream:
        task = task.with_realtime_output(_print_line)
    return task


def main(argv: list[str] | None = None) -> int:
    settings = RunnerSettings()
    logging.basicConfig(level=settings.log_level)
    parser = build_parser()
    ns = parser.parse_args(argv)

    try:
        task = build_task(ns, settings=settings)
    except (ValidationError, ValueError, OSError, RunnerError) as exc:
        print(f"shell-runner: {exc}", file=sys.stderr)
        return EXIT_USAGE

    result = TaskRunner(task, settings=settings).run()
    if result.success:
        return 0
    if isinstance(result.error, ChildNonZeroExitError) and result.error.exit_code > 0:
        return result.error.exit_code
    if not task.realtime_output:
        print(f"shell-runner: {result.error}", file=sys.stderr)
    return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
