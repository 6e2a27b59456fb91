"""Execution of a configured ``Task`` in a login shell.

A ``TaskRunner`` builds one ``/bin/bash -lc "<command>"`` invocation (wrapped in
``sudo -HSu <user>`` when the task switches users), runs it, and reports the
outcome as a ``RunResult``. Success and failure callbacks are fired on their
own daemon threads and never awaited.

In streaming mode stdout lines reach the handler as they are read. Stderr is
drained concurrently on a background thread so a chatty stderr cannot block
the child, but its lines are delivered only after stdout is exhausted.
"""

from __future__ import annotations

import logging
import queue
import shlex
import subprocess
import threading
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import IO

from shell_runner.core.config import RunnerSettings
from shell_runner.core.errors import (
    ChildNonZeroExitError,
    RunnerError,
    SpawnFailedError,
    StreamReadFailedError,
)
from shell_runner.integrations.process.subprocess_utils import CommandRunner
from shell_runner.task import SOURCE_COMMAND, SOURCE_SYSTEM, STDERR, STDOUT, StreamKind, Task

Callback = Callable[[], None]
LineOrError = str | StreamReadFailedError


@dataclass(frozen=True)
class RunResult:
    """Outcome of a run.

    Unpacks as ``success, error = result``.
    """

    success: bool
    error: RunnerError | None = None
    exit_code: int | None = None

    def __iter__(self) -> Iterator[object]:
        yield self.success
        yield self.error


class CallbackDispatcher:
    """Fires notification callbacks on short-lived daemon threads."""

    _logger = logging.getLogger(__name__)

    def dispatch(self, callback: Callback | None, *, name: str) -> threading.Thread | None:
        if callback is None:
            return None
        thread = threading.Thread(
            target=self._invoke,
            args=(callback, name),
            name=f"shell-runner-{name}",
            daemon=True,
        )
        thread.start()
        return thread

    def _invoke(self, callback: Callback, name: str) -> None:
        try:
            callback()
        except Exception:  # noqa: BLE001
            self._logger.exception("Notification callback failed: callback=%s", name)


def _read_lines(stream: IO[bytes], stream_name: str) -> Iterator[LineOrError]:
    """Yields decoded lines without their line terminator.

    Bytes that are not valid UTF-8 are replaced, never dropped. A read error is
    yielded once and ends the stream.
    """

    try:
        for raw in stream:
            if raw.endswith(b"\n"):
                raw = raw[:-1]
                if raw.endswith(b"\r"):
                    raw = raw[:-1]
            yield raw.decode("utf-8", errors="replace")
    except (OSError, ValueError) as exc:
        yield StreamReadFailedError(
            f"failed to read `{stream_name}` - {exc}", stream=stream_name
        )


class _StreamPump(threading.Thread):
    """Drains a child's stream on a background thread into a queue."""

    _DONE = object()

    def __init__(self, stream: IO[bytes], *, stream_name: str) -> None:
        super().__init__(name=f"shell-runner-{stream_name}-pump", daemon=True)
        self._stream = stream
        self._stream_name = stream_name
        self._queue: queue.Queue[object] = queue.Queue()

    def run(self) -> None:
        try:
            for item in _read_lines(self._stream, self._stream_name):
                self._queue.put(item)
        finally:
            self._queue.put(self._DONE)

    def lines(self) -> Iterator[LineOrError]:
        """Yields drained lines in arrival order until the stream closes."""

        while True:
            item = self._queue.get()
            if item is self._DONE:
                return
            yield item  # type: ignore[misc]


class TaskRunner:
    """Runs one ``Task`` exactly once."""

    _logger = logging.getLogger(__name__)

    def __init__(
        self,
        task: Task,
        *,
        on_error: Callback | None = None,
        on_success: Callback | None = None,
        settings: RunnerSettings | None = None,
        runner: CommandRunner | None = None,
        dispatcher: CallbackDispatcher | None = None,
    ) -> None:
        self._task = task
        self._on_error = on_error
        self._on_success = on_success
        self._settings = settings or RunnerSettings()
        self._runner = runner or CommandRunner()
        self._dispatcher = dispatcher or CallbackDispatcher()
        self._started = False
        self._start_lock = threading.Lock()

    @property
    def task(self) -> Task:
        return self._task

    def run(self) -> RunResult:
        """Runs the task and blocks until the child exits or a fatal error occurs.

        Returns:
            RunResult. Exactly one of ``on_success`` / ``on_error`` is
            dispatched for every returned result.

        Raises:
            RuntimeError: If this runner was already used.
        """

        with self._start_lock:
            if self._started:
                raise RuntimeError("A TaskRunner runs its task only once.")
            self._started = True

        args = self.build_command()
        self._logger.debug(
            "Running task: command=%s realtime_output=%s",
            self._task.command,
            self._task.realtime_output,
        )
        if not self._task.realtime_output:
            return self._run_buffered(args)
        return self._run_streaming(args)

    def build_base_command(self) -> list[str]:
        """Returns the shell invocation, wrapped in the elevation tool when needed."""

        settings = self._settings
        base = [settings.shell_path, *settings.shell_flags]
        if self._task.run_as and not self._task.is_same_user():
            return [settings.elevator, settings.elevator_flags, self._task.run_as, *base]
        return base

    def compose_command_string(self) -> str:
        """Returns the command string handed to the shell.

        The optional ``cd`` and the command are joined with ``&&`` so the
        command never runs in the wrong directory. The directory is passed to
        the shell as written, so ``~`` and ``$VAR`` expand.
        """

        task = self._task
        quote: Callable[[str], str] = shlex.quote if task.quote_arguments else str
        steps: list[str] = []
        if task.has_working_dir():
            steps.append(f"cd {task.working_dir}")
        steps.append(" ".join([task.command, *(quote(arg) for arg in task.arguments)]))
        return " && ".join(steps)

    def build_command(self) -> list[str]:
        return [*self.build_base_command(), self.compose_command_string()]

    def _run_buffered(self, args: list[str]) -> RunResult:
        try:
            result = self._runner.run(args=args)
        except OSError as exc:
            return self._fail(
                SpawnFailedError("failed to execute command", details={"error": exc})
            )

        if result.exit_code != 0:
            return self._fail(
                ChildNonZeroExitError(exit_code=result.exit_code, stderr=result.stderr),
                exit_code=result.exit_code,
            )
        return self._succeed(exit_code=0)

    def _run_streaming(self, args: list[str]) -> RunResult:
        try:
            process = self._runner.spawn(args=args)
        except OSError as exc:
            error = SpawnFailedError(f"failed to start command - {exc}")
            self._emit_system_error(error)
            return self._fail(error)

        with process:
            assert process.stdout is not None and process.stderr is not None
            stderr_pump = _StreamPump(process.stderr, stream_name="stderr")
            stderr_pump.start()
            try:
                aborted = self._deliver_lines(_read_lines(process.stdout, "stdout"), STDOUT)
                if aborted is None:
                    aborted = self._deliver_lines(stderr_pump.lines(), STDERR)
            except BaseException:
                self._stop(process, stderr_pump)
                raise
            if aborted is not None:
                self._stop(process, stderr_pump)
                return self._fail(aborted)
            exit_code = process.wait()

        if exit_code != 0:
            error = ChildNonZeroExitError(exit_code=exit_code)
            self._emit_system_error(error, prefix="command failed with following error - ")
            return self._fail(error, exit_code=exit_code)

        self._handler(STDOUT, f"exit status {exit_code}", SOURCE_SYSTEM)
        return self._succeed(exit_code=exit_code)

    def _deliver_lines(
        self, lines: Iterator[LineOrError], stream_kind: StreamKind
    ) -> StreamReadFailedError | None:
        """Hands lines to the task handler.

        Returns:
            The read error that should abort the run, or None when the stream
            was consumed.
        """

        for item in lines:
            if isinstance(item, StreamReadFailedError):
                self._emit_system_error(item)
                if self._task.fail_on_error:
                    return item
                continue
            if stream_kind == STDERR and item == "":
                continue
            self._handler(stream_kind, item, SOURCE_COMMAND)
        return None

    def _handler(self, stream_kind: int, line: str, source: int) -> None:
        handler = self._task.realtime_output_handler
        assert handler is not None
        handler(stream_kind, line, source)

    def _emit_system_error(self, error: RunnerError, *, prefix: str = "") -> None:
        self._logger.error("%s%s", prefix, error)
        self._handler(STDERR, error.message, SOURCE_SYSTEM)

    @staticmethod
    def _stop(process: subprocess.Popen[bytes], pump: _StreamPump) -> None:
        if process.poll() is None:
            process.kill()
        process.wait()
        pump.join()

    def _fail(self, error: RunnerError, *, exit_code: int | None = None) -> RunResult:
        if not self._task.realtime_output:
            self._logger.error("failed to execute command - %s", error)
        self._dispatcher.dispatch(self._on_error, name="on_error")
        return RunResult(success=False, error=error, exit_code=exit_code)

    def _succeed(self, *, exit_code: int) -> RunResult:
        self._dispatcher.dispatch(self._on_success, name="on_success")
        return RunResult(success=True, error=None, exit_code=exit_code)


def run_task(task: Task, *, settings: RunnerSettings | None = None) -> RunResult:
    """Runs ``task`` without callbacks."""

    return TaskRunner(task, settings=settings).run()
