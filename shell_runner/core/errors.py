"""Error types raised while configuring and running shell tasks.

Task construction raises these directly. ``TaskRunner.run`` returns them inside
a ``RunResult`` instead of raising, so callers can treat a failed command as a
value.
"""

from __future__ import annotations


class RunnerError(RuntimeError):
    """Base class for all shell-runner errors."""

    def __init__(self, message: str, *, details: dict[str, object] | None = None) -> None:
        parts: list[str] = [message]
        for key, value in (details or {}).items():
            if value is None or value == "":
                continue
            parts.append(f"{key}={value}")
        super().__init__(" | ".join(parts))
        self.message = message


class ProbeUnavailableError(RunnerError):
    """Raised when the invoking user's name cannot be determined."""


class UnknownUserError(RunnerError):
    """Raised when the group lookup for a user fails."""

    def __init__(self, *, username: str) -> None:
        super().__init__(f"user `{username}` could not be found")
        self.username = username


class NotPrivilegedError(RunnerError):
    """Raised when a user exists but is not in the elevation group."""

    def __init__(self, *, username: str, group: str = "sudo") -> None:
        super().__init__(f"user `{username}` has no {group} privileges")
        self.username = username
        self.group = group


class PlatformUnsupportedError(RunnerError):
    """Raised when privilege elevation is requested on a non-POSIX host."""

    def __init__(self, *, platform: str) -> None:
        super().__init__(
            "this system does not support `sudo` privileges elevation",
            details={"platform": platform},
        )
        self.platform = platform


class SpawnFailedError(RunnerError):
    """Raised when the child process or its pipes cannot be created."""


class StreamReadFailedError(RunnerError):
    """Raised when a line cannot be read from a child's output stream."""

    def __init__(self, message: str, *, stream: str) -> None:
        super().__init__(message, details={"stream": stream})
        self.stream = stream


class ChildNonZeroExitError(RunnerError):
    """Raised when the child process exits with a non-zero status."""

    def __init__(self, *, exit_code: int, stderr: str | None = None) -> None:
        stderr_text = (stderr or "").strip()
        if len(stderr_text) > 2000:
            stderr_text = stderr_text[-2000:]
        super().__init__(f"exit status {exit_code}", details={"stderr": stderr_text})
        self.exit_code = exit_code
        self.stderr = stderr
