from __future__ import annotations

from pathlib import Path

from shell_runner.core.config import RunnerSettings


def test_runner_settings_defaults_match_stock_host(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    settings = RunnerSettings()
    assert settings.shell_path == "/bin/bash"
    assert settings.shell_flags == ["-lc"]
    assert settings.elevator == "sudo"
    assert settings.elevator_flags == "-HSu"
    assert settings.elevation_group == "sudo"
    assert settings.privileged_account is None


def test_runner_settings_can_load_from_dotenv(tmp_path: Path) -> None:
    env_file = tmp_path / ".env"
    env_file.write_text(
        "\n".join(
            [
                "SHELL_RUNNER_PRIVILEGED_ACCOUNT=ccm",
                "SHELL_RUNNER_SHELL_PATH=/usr/bin/bash",
                'SHELL_RUNNER_SHELL_FLAGS=["-c"]',
            ]
        )
        + "\n",
        encoding="utf-8",
    )

    settings = RunnerSettings(_env_file=str(env_file))
    assert settings.privileged_account == "ccm"
    assert settings.shell_path == "/usr/bin/bash"
    assert settings.shell_flags == ["-c"]


def test_runner_settings_strips_surrounding_quotes_from_env(monkeypatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SHELL_RUNNER_PRIVILEGED_ACCOUNT", '"ccm"')
    monkeypatch.setenv("SHELL_RUNNER_ELEVATION_GROUP", "'wheel'")
    monkeypatch.setenv("SHELL_RUNNER_LOG_LEVEL", "debug")
    settings = RunnerSettings()
    assert settings.privileged_account == "ccm"
    assert settings.elevation_group == "wheel"
    assert settings.log_level == "DEBUG"


def test_runner_settings_treats_blank_privileged_account_as_unset(monkeypatch, tmp_path) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SHELL_RUNNER_PRIVILEGED_ACCOUNT", "  ")
    assert RunnerSettings().privileged_account is None


def test_runner_settings_falls_back_to_defaults_for_blank_env(monkeypatch, tmp_path) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SHELL_RUNNER_ELEVATOR", "")
    monkeypatch.setenv("SHELL_RUNNER_SHELL_PATH", '""')
    monkeypatch.setenv("SHELL_RUNNER_LOG_LEVEL", " ")
    settings = RunnerSettings()
    assert settings.elevator == "sudo"
    assert settings.shell_path == "/bin/bash"
    assert settings.log_level == "INFO"
