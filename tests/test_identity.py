from __future__ import annotations

from pathlib import Path

import pytest

from shell_runner.core.config import RunnerSettings
from shell_runner.core.errors import NotPrivilegedError, ProbeUnavailableError, UnknownUserError
from shell_runner.identity import IdentityProbe
from shell_runner.integrations.process.subprocess_utils import CommandResult


class _ScriptedRunner:
    def __init__(self, responses: dict[str, CommandResult | Exception]) -> None:
        self._responses = responses
        self.calls: list[list[str]] = []

    def run(
        self, *, args: list[str], cwd: str | Path | None = None, env=None, timeout_seconds=None
    ) -> CommandResult:
        self.calls.append(list(args))
        response = self._responses[args[0]]
        if isinstance(response, Exception):
            raise response
        return response


def _probe(runner: _ScriptedRunner, **settings_overrides) -> IdentityProbe:
    return IdentityProbe(settings=RunnerSettings(**settings_overrides), runner=runner)


def test_get_current_username_trims_output() -> None:
    runner = _ScriptedRunner({"whoami": CommandResult(exit_code=0, stdout="  alice\n", stderr="")})
    assert _probe(runner).get_current_username() == "alice"


def test_get_current_username_raises_when_binary_is_missing() -> None:
    runner = _ScriptedRunner({"whoami": FileNotFoundError("whoami")})
    with pytest.raises(ProbeUnavailableError):
        _probe(runner).get_current_username()


def test_get_current_username_raises_on_non_zero_exit() -> None:
    runner = _ScriptedRunner(
        {"whoami": CommandResult(exit_code=1, stdout="", stderr="cannot find name for user ID")}
    )
    with pytest.raises(ProbeUnavailableError) as excinfo:
        _probe(runner).get_current_username()
    assert "exit_code=1" in str(excinfo.value)


def test_has_sudo_privileges_checks_named_user() -> None:
    runner = _ScriptedRunner(
        {"groups": CommandResult(exit_code=0, stdout="ccm : ccm adm sudo\n", stderr="")}
    )
    assert _probe(runner).has_sudo_privileges("ccm") is True
    assert runner.calls == [["groups", "ccm"]]


def test_has_sudo_privileges_defaults_to_current_user() -> None:
    runner = _ScriptedRunner(
        {
            "whoami": CommandResult(exit_code=0, stdout="alice\n", stderr=""),
            "groups": CommandResult(exit_code=0, stdout="alice : alice sudo\n", stderr=""),
        }
    )
    assert _probe(runner).has_sudo_privileges("  ") is True
    assert runner.calls == [["whoami"], ["groups", "alice"]]


def test_has_sudo_privileges_raises_unknown_user_when_lookup_fails() -> None:
    runner = _ScriptedRunner(
        {"groups": CommandResult(exit_code=1, stdout="", stderr="groups: 'ghost': no such user")}
    )
    with pytest.raises(UnknownUserError) as excinfo:
        _probe(runner).has_sudo_privileges("ghost")
    assert str(excinfo.value) == "user `ghost` could not be found"


def test_has_sudo_privileges_raises_not_privileged_without_group() -> None:
    runner = _ScriptedRunner(
        {"groups": CommandResult(exit_code=0, stdout="bob : bob users\n", stderr="")}
    )
    with pytest.raises(NotPrivilegedError) as excinfo:
        _probe(runner).has_sudo_privileges("bob")
    assert excinfo.value.username == "bob"
    assert "has no sudo privileges" in str(excinfo.value)


def test_has_sudo_privileges_uses_configured_group() -> None:
    runner = _ScriptedRunner(
        {"groups": CommandResult(exit_code=0, stdout="carol : carol wheel\n", stderr="")}
    )
    assert _probe(runner, elevation_group="wheel").has_sudo_privileges("carol") is True
