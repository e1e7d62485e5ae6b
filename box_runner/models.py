from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from box_runner.errors import ConfigError
from box_runner.durations import duration_to_seconds, is_duration

CONFIG_ENV_VAR = "BOX_RUNNER_CONFIG"


def _validate_duration(value: str) -> str:
    if not is_duration(value):
        raise ValueError("Duration must match '<number>ms' or '<number>s'")
    return value


class BoxSettings(BaseModel):
    height: int = Field(default=4, ge=1)
    width: int | None = Field(default=None, ge=10)
    overflow: Literal["crop", "ellipsis"] = "crop"
    refresh_interval: str = "100ms"
    transient: bool = True
    stdout_style: str = "dim cyan"
    stderr_style: str = "dim yellow"
    border_style: str = "dim"

    @field_validator("refresh_interval")
    @classmethod
    def validate_refresh_interval(cls, value: str) -> str:
        _validate_duration(value)
        if duration_to_seconds(value) <= 0:
            raise ValueError("refresh_interval must be greater than zero")
        return value

    @property
    def refresh_seconds(self) -> float:
        return duration_to_seconds(self.refresh_interval)


class RunConfig(BaseModel):
    output_dir: Path | None = None
    cwd: Path | None = None
    env: dict[str, str] = Field(default_factory=dict)
    chunk_size: int = Field(default=65536, ge=1)
    kill_timeout: str = "5s"
    write_retries: int = Field(default=1, ge=0)
    box: BoxSettings = Field(default_factory=BoxSettings)

    @field_validator("kill_timeout")
    @classmethod
    def validate_kill_timeout(cls, value: str) -> str:
        return _validate_duration(value)

    @property
    def kill_timeout_seconds(self) -> float:
        return duration_to_seconds(self.kill_timeout)

    def with_overrides(self, **overrides: Any) -> RunConfig:
        """Return a copy with CLI overrides applied; ``None`` values are ignored.

        Keys prefixed with ``box_`` target the nested box settings.
        """
        top: dict[str, Any] = {}
        box: dict[str, Any] = {}
        for key, value in overrides.items():
            if value is None:
                continue
            if key.startswith("box_"):
                box[key.removeprefix("box_")] = value
            else:
                top[key] = value
        data = self.model_dump()
        data.update(top)
        data["box"] = {**data["box"], **box}
        return RunConfig.model_validate(data)


def format_validation_error(exc: ValidationError) -> str:
    messages: list[str] = []
    for issue in exc.errors():
        loc = ".".join(str(part) for part in issue.get("loc", []))
        message = issue.get("msg", "validation error")
        messages.append(f"{loc}: {message}")
    return "\n".join(messages)


def load_config(path: Path) -> RunConfig:
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(f"Cannot read config at {path}: {exc}") from exc
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError(f"Config at {path} must be a YAML object")
    try:
        config = RunConfig.model_validate(raw)
    except ValidationError as exc:
        raise ConfigError(f"Invalid config at {path}:\n{format_validation_error(exc)}") from exc

    # Relative paths in a config file are relative to the file, not the caller.
    base = path.resolve().parent
    updates: dict[str, Path] = {}
    if config.output_dir is not None and not config.output_dir.is_absolute():
        updates["output_dir"] = base / config.output_dir
    if config.cwd is not None and not config.cwd.is_absolute():
        updates["cwd"] = base / config.cwd
    return config.model_copy(update=updates)


def resolve_config(path: Path | None = None) -> RunConfig:
    if path is None:
        env_path = os.environ.get(CONFIG_ENV_VAR, "").strip()
        if not env_path:
            return RunConfig()
        path = Path(env_path)
    return load_config(path)
