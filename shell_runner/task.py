"""Task description for a single shell command.

A ``Task`` is a frozen value object. Every configuration step returns a new
instance, so a task handed to a runner cannot change while it runs.
"""

from __future__ import annotations

import os
import sys
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field, replace
from enum import IntEnum

from pydantic import BaseModel, Field, field_validator

from shell_runner.core.config import RunnerSettings
from shell_runner.core.errors import PlatformUnsupportedError
from shell_runner.identity import IdentityProbe


class StreamKind(IntEnum):
    """Output stream a streamed line belongs to."""

    STDOUT = 1
    STDERR = 2


class LineSource(IntEnum):
    """Producer of a streamed line."""

    SYSTEM = 1
    COMMAND = 2


STDOUT = StreamKind.STDOUT
STDERR = StreamKind.STDERR
SOURCE_SYSTEM = LineSource.SYSTEM
SOURCE_COMMAND = LineSource.COMMAND

LineHandler = Callable[[int, str, int], None]


@dataclass(frozen=True)
class BufferedOutput:
    """Run to completion without delivering output."""


@dataclass(frozen=True)
class StreamingOutput:
    """Deliver each output line to ``handler`` as it is read."""

    handler: LineHandler

    def __post_init__(self) -> None:
        if not callable(self.handler):
            raise TypeError("Streaming output requires a callable line handler.")


OutputMode = BufferedOutput | StreamingOutput


def detect_platform() -> tuple[str, bool]:
    """Returns the host OS identifier and whether ``sudo`` elevation is possible."""

    return sys.platform, os.name == "posix"


class TaskOptions(BaseModel):
    """Serialized task description, e.g. from a JSON job payload."""

    run_as: str = Field(default="", description="Target user; empty disables elevation.")
    command: str = Field(..., description="Executable to run.")
    arguments: list[str] = Field(default_factory=list)
    working_dir: str = Field(default="")
    fail_on_error: bool = Field(default=False)
    quote_arguments: bool = Field(default=True)

    @field_validator("command")
    @classmethod
    def _require_command(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("command must not be empty.")
        return value.strip()

    @field_validator("arguments", mode="before")
    @classmethod
    def _null_arguments_as_empty(cls, value: object) -> object:
        return [] if value is None else value


@dataclass(frozen=True)
class Task:
    """One command to run, with its user, directory and output settings.

    Attributes:
        os: Host OS identifier, fixed at construction.
        can_sudo: Whether privilege elevation is available on this host.
        running_as: Invoking user's name; set only when a target user is set.
        run_as: Target user. Empty means no elevation. A non-empty value needs
            ``running_as`` too, which ``with_run_as`` fills in after checking
            privileges.
        output: Buffered or streaming output mode.
        fail_on_error: Abort a streaming run on the first unreadable line.
        command: Executable token.
        arguments: Argument tokens, in order.
        working_dir: Directory to ``cd`` into first. Empty inherits the cwd.
        quote_arguments: Shell-quote argument tokens.
    """

    command: str
    arguments: tuple[str, ...] = ()
    working_dir: str = ""
    run_as: str = ""
    running_as: str = ""
    fail_on_error: bool = True
    output: OutputMode = field(default_factory=BufferedOutput)
    quote_arguments: bool = True
    os: str = field(default_factory=lambda: detect_platform()[0])
    can_sudo: bool = field(default_factory=lambda: detect_platform()[1])

    def __post_init__(self) -> None:
        if not self.command.strip():
            raise ValueError("command must not be empty.")
        if self.run_as.strip():
            if not self.can_sudo:
                raise PlatformUnsupportedError(platform=self.os)
            if not self.running_as.strip():
                raise ValueError("run_as requires a verified invoking user; use with_run_as().")

    @classmethod
    def create(cls, command: str) -> Task:
        """Creates a buffered task that fails on error and runs as the current user."""

        return cls(command=command)

    @classmethod
    def from_options(
        cls,
        options: TaskOptions,
        *,
        probe: IdentityProbe | None = None,
        settings: RunnerSettings | None = None,
    ) -> Task:
        """Creates a task from deserialized options.

        When ``options.run_as`` is set the target-user step runs, which
        consults the host and may raise.
        """

        task = cls(
            command=options.command,
            arguments=tuple(options.arguments),
            working_dir=options.working_dir.strip(),
            fail_on_error=options.fail_on_error,
            quote_arguments=options.quote_arguments,
        )
        if options.run_as:
            task = task.with_run_as(options.run_as, probe=probe, settings=settings)
        return task

    @classmethod
    def from_json(
        cls,
        text: str | bytes,
        *,
        probe: IdentityProbe | None = None,
        settings: RunnerSettings | None = None,
    ) -> Task:
        """Creates a task from a JSON document in ``TaskOptions`` format."""

        options = TaskOptions.model_validate_json(text)
        return cls.from_options(options, probe=probe, settings=settings)

    @property
    def realtime_output(self) -> bool:
        return isinstance(self.output, StreamingOutput)

    @property
    def realtime_output_handler(self) -> LineHandler | None:
        if isinstance(self.output, StreamingOutput):
            return self.output.handler
        return None

    def with_arguments(self, arguments: Iterable[str]) -> Task:
        return replace(self, arguments=tuple(arguments))

    def with_working_dir(self, directory: str) -> Task:
        return replace(self, working_dir=directory.strip())

    def with_skip_error(self) -> Task:
        """Keeps streaming past unreadable output lines instead of aborting."""

        return replace(self, fail_on_error=False)

    def with_realtime_output(self, handler: LineHandler) -> Task:
        """Streams output lines to ``handler(stream_kind, line, source)``."""

        return replace(self, output=StreamingOutput(handler=handler))

    def with_raw_arguments(self) -> Task:
        """Passes argument tokens to the shell unquoted.

        Use this when arguments intentionally carry shell syntax (globs,
        redirections, ``&&``). Escaping is then the caller's responsibility.
        """

        return replace(self, quote_arguments=False)

    def with_run_as(
        self,
        username: str,
        *,
        probe: IdentityProbe | None = None,
        settings: RunnerSettings | None = None,
    ) -> Task:
        """Runs the command as ``username`` through the elevation tool.

        A blank ``username`` elevates as the invoking user. Before accepting
        the switch, the privileged account (``settings.privileged_account``,
        or the invoking user when unset) must be in the elevation group.

        Raises:
            PlatformUnsupportedError: On hosts without ``sudo`` support.
            ProbeUnavailableError: If the invoking user cannot be determined.
            UnknownUserError: If the privileged account cannot be looked up.
            NotPrivilegedError: If the privileged account may not elevate.
        """

        if not self.can_sudo:
            raise PlatformUnsupportedError(platform=self.os)

        settings = settings or RunnerSettings()
        probe = probe or IdentityProbe(settings=settings)

        running_as = probe.get_current_username()
        target = username.strip() or running_as
        probe.has_sudo_privileges(settings.privileged_account or running_as)

        return replace(self, running_as=running_as, run_as=target)

    def with_sudo(
        self,
        *,
        probe: IdentityProbe | None = None,
        settings: RunnerSettings | None = None,
    ) -> Task:
        """Runs the command through the elevation tool as the invoking user."""

        return self.with_run_as("", probe=probe, settings=settings)

    def is_same_user(self) -> bool:
        """True when the target user is the invoking user, making elevation a no-op."""

        return self.running_as.strip() == self.run_as.strip()

    def has_working_dir(self) -> bool:
        return self.working_dir.strip() != ""
