"""Utilities for running subprocesses.

Commands are always passed as argv lists (no ``shell=True``); shell features
come from explicitly invoking the configured shell with a command string.
"""

from __future__ import annotations

import logging
import os
import subprocess
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class CommandResult:
    """Result of running a command."""

    exit_code: int
    stdout: str
    stderr: str


class CommandRunner:
    """Runs OS commands with controlled environment and output capturing."""

    _logger = logging.getLogger(__name__)

    def run(
        self,
        *,
        args: list[str],
        cwd: str | Path | None = None,
        env: dict[str, str] | None = None,
        timeout_seconds: int | None = None,
    ) -> CommandResult:
        """Runs a command to completion and captures stdout/stderr.

        Args:
            args: Command arguments (no shell).
            cwd: Working directory.
            env: Environment variables to merge with current environment.
            timeout_seconds: Optional timeout.

        Returns:
            Captured result.

        Raises:
            subprocess.TimeoutExpired: If timeout is exceeded.
            OSError: If process cannot be started.
        """

        self._logger.debug("Running command: args=%s cwd=%s", args, cwd)
        completed = subprocess.run(
            args,
            cwd=str(cwd) if cwd is not None else None,
            env=self._merge_env(env),
            check=False,
            text=True,
            errors="replace",
            capture_output=True,
            stdin=subprocess.DEVNULL,
            timeout=timeout_seconds,
        )
        return CommandResult(
            exit_code=int(completed.returncode),
            stdout=completed.stdout,
            stderr=completed.stderr,
        )

    def spawn(
        self,
        *,
        args: list[str],
        cwd: str | Path | None = None,
        env: dict[str, str] | None = None,
    ) -> subprocess.Popen[bytes]:
        """Starts a command with binary pipes for stdout and stderr.

        The caller owns the returned process and must close its pipes and wait
        for it; using it as a context manager does both.

        Raises:
            OSError: If the process or its pipes cannot be created.
        """

        self._logger.debug("Spawning command: args=%s cwd=%s", args, cwd)
        return subprocess.Popen(
            args,
            cwd=str(cwd) if cwd is not None else None,
            env=self._merge_env(env),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
        )

    @staticmethod
    def _merge_env(env: dict[str, str] | None) -> dict[str, str] | None:
        if env is None:
            return None
        merged_env = os.environ.copy()
        merged_env.update(env)
        return merged_env
