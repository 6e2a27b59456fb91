"""Runner configuration.

Everything here can be overridden through ``SHELL_RUNNER_*`` environment
variables or a ``.env`` file. The defaults match a stock Debian/Ubuntu host.
"""

from __future__ import annotations

from typing import Any

from pydantic import ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RunnerSettings(BaseSettings):
    """Settings for task construction and execution."""

    model_config = SettingsConfigDict(
        env_prefix="SHELL_RUNNER_",
        extra="ignore",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # Shell used for every command
    shell_path: str = "/bin/bash"
    shell_flags: list[str] = ["-lc"]

    # Privilege elevation
    elevator: str = "sudo"
    elevator_flags: str = "-HSu"
    elevation_group: str = "sudo"
    # Account whose group membership gates elevation. None checks the invoking user.
    privileged_account: str | None = None

    # Identity lookups
    whoami_command: str = "whoami"
    groups_command: str = "groups"

    log_level: str = "INFO"

    @field_validator(
        "shell_path",
        "elevator",
        "elevator_flags",
        "elevation_group",
        "privileged_account",
        "whoami_command",
        "groups_command",
        "log_level",
        mode="before",
    )
    @classmethod
    def _normalize_env_string(cls, value: Any, info: ValidationInfo) -> Any:
        """Trims whitespace and strips a single pair of surrounding quotes.

        Docker's ``--env-file`` keeps quotes verbatim, which would otherwise end
        up inside executable paths and user names. A blank value falls back to
        the field default.
        """

        if value is None or not isinstance(value, str):
            return value
        text = value.strip()
        if len(text) >= 2 and ((text[0] == text[-1] == '"') or (text[0] == text[-1] == "'")):
            text = text[1:-1].strip()
        if not text:
            return cls.model_fields[info.field_name].default
        return text

    @field_validator("log_level")
    @classmethod
    def _uppercase_log_level(cls, value: str | None) -> str:
        return (value or "INFO").upper()
