"""Host identity lookups used to validate privilege elevation.

The checks shell out to ``whoami`` and ``groups`` instead of reading
``/etc/group`` so that the answer matches what ``sudo`` itself will honour
(NSS, LDAP and similar sources included).
"""

from __future__ import annotations

import logging

from shell_runner.core.config import RunnerSettings
from shell_runner.core.errors import NotPrivilegedError, ProbeUnavailableError, UnknownUserError
from shell_runner.integrations.process.subprocess_utils import CommandRunner


class IdentityProbe:
    """Queries the host for the invoking user and elevation group membership."""

    _logger = logging.getLogger(__name__)

    def __init__(
        self,
        *,
        settings: RunnerSettings | None = None,
        runner: CommandRunner | None = None,
    ) -> None:
        self._settings = settings or RunnerSettings()
        self._runner = runner or CommandRunner()

    def get_current_username(self) -> str:
        """Returns the invoking user's name.

        Raises:
            ProbeUnavailableError: If the lookup command cannot run, fails or
                prints nothing.
        """

        command = self._settings.whoami_command
        try:
            result = self._runner.run(args=[command])
        except OSError as exc:
            self._logger.warning("User lookup could not start: command=%s error=%s", command, exc)
            raise ProbeUnavailableError(
                "failed to determine current user", details={"command": command, "error": exc}
            ) from exc
        if result.exit_code != 0:
            self._logger.warning(
                "User lookup failed: command=%s exit_code=%s", command, result.exit_code
            )
            raise ProbeUnavailableError(
                "failed to determine current user",
                details={
                    "command": command,
                    "exit_code": result.exit_code,
                    "stderr": result.stderr.strip(),
                },
            )
        username = result.stdout.strip()
        if not username:
            raise ProbeUnavailableError(
                "failed to determine current user", details={"command": command}
            )
        return username

    def has_sudo_privileges(self, username: str = "") -> bool:
        """Checks whether ``username`` belongs to the elevation group.

        Args:
            username: User to check. Blank means the invoking user.

        Returns:
            True when the user is a member. Non-members raise instead of
            returning False so callers get a reason.

        Raises:
            ProbeUnavailableError: If ``username`` is blank and the current
                user cannot be determined.
            UnknownUserError: If the group lookup fails.
            NotPrivilegedError: If the user is not in the elevation group.
        """

        if not username.strip():
            username = self.get_current_username()

        group = self._settings.elevation_group
        try:
            result = self._runner.run(args=[self._settings.groups_command, username])
        except OSError as exc:
            self._logger.warning("Group lookup could not start: user=%s error=%s", username, exc)
            raise UnknownUserError(username=username) from exc
        if result.exit_code != 0:
            self._logger.warning(
                "Group lookup failed: user=%s exit_code=%s", username, result.exit_code
            )
            raise UnknownUserError(username=username)

        groups_output = result.stdout.strip()
        self._logger.debug("Group lookup: user=%s groups=%s", username, groups_output)
        # Output looks like "user : g1 g2"; a substring scan also matches the user name.
        if group in groups_output:
            return True
        raise NotPrivilegedError(username=username, group=group)
