from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from box_runner.durations import duration_to_seconds
from box_runner.errors import ConfigError
from box_runner.models import CONFIG_ENV_VAR, BoxSettings, RunConfig, load_config, resolve_config


def test_run_config_defaults() -> None:
    config = RunConfig()

    assert config.output_dir is None
    assert config.box.height == 4
    assert config.box.width is None
    assert config.box.transient is True
    assert config.box.refresh_seconds == pytest.approx(0.1)
    assert config.kill_timeout_seconds == pytest.approx(5.0)


def test_load_config_reads_yaml_and_resolves_relative_paths(tmp_path: Path) -> None:
    config_path = tmp_path / "boxrun.yaml"
    config_path.write_text(
        """
output_dir: runs
cwd: project
env:
  LANG: C
chunk_size: 1024
kill_timeout: 250ms
box:
  height: 8
  overflow: ellipsis
  stderr_style: bold red
""",
        encoding="utf-8",
    )

    config = load_config(config_path)

    assert config.output_dir == tmp_path.resolve() / "runs"
    assert config.cwd == tmp_path.resolve() / "project"
    assert config.env == {"LANG": "C"}
    assert config.chunk_size == 1024
    assert config.kill_timeout_seconds == pytest.approx(0.25)
    assert config.box.height == 8
    assert config.box.overflow == "ellipsis"
    assert config.box.stderr_style == "bold red"


def test_load_config_empty_file_uses_defaults(tmp_path: Path) -> None:
    config_path = tmp_path / "empty.yaml"
    config_path.write_text("", encoding="utf-8")

    assert load_config(config_path) == RunConfig()


def test_load_config_reports_invalid_fields(tmp_path: Path) -> None:
    config_path = tmp_path / "bad.yaml"
    config_path.write_text("box:\n  height: 0\n  refresh_interval: soon\n", encoding="utf-8")

    with pytest.raises(ConfigError) as excinfo:
        load_config(config_path)

    message = str(excinfo.value)
    assert "box.height" in message
    assert "box.refresh_interval" in message


def test_load_config_rejects_non_mapping(tmp_path: Path) -> None:
    config_path = tmp_path / "list.yaml"
    config_path.write_text("- one\n- two\n", encoding="utf-8")

    with pytest.raises(ConfigError, match="must be a YAML object"):
        load_config(config_path)


def test_load_config_rejects_malformed_yaml(tmp_path: Path) -> None:
    config_path = tmp_path / "broken.yaml"
    config_path.write_text("box: [unclosed\n", encoding="utf-8")

    with pytest.raises(ConfigError, match="Cannot read config"):
        load_config(config_path)


def test_with_overrides_ignores_unset_values(tmp_path: Path) -> None:
    base = RunConfig(box=BoxSettings(height=6, transient=False))

    updated = base.with_overrides(
        output_dir=tmp_path,
        box_height=None,
        box_width=30,
        box_transient=None,
    )

    assert updated.output_dir == tmp_path
    assert updated.box.height == 6
    assert updated.box.width == 30
    assert updated.box.transient is False
    assert base.box.width is None


def test_resolve_config_uses_environment_variable(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    config_path = tmp_path / "env.yaml"
    config_path.write_text("box:\n  height: 9\n", encoding="utf-8")
    monkeypatch.setenv(CONFIG_ENV_VAR, str(config_path))

    assert resolve_config().box.height == 9


def test_resolve_config_without_file_is_default(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)

    assert resolve_config() == RunConfig()


def test_duration_to_seconds() -> None:
    assert duration_to_seconds("1500ms") == pytest.approx(1.5)
    assert duration_to_seconds("2s") == pytest.approx(2.0)
    with pytest.raises(ValueError):
        duration_to_seconds("2m")


@pytest.mark.parametrize("interval", ["0ms", "0s", "0.0s"])
def test_box_settings_rejects_zero_refresh_interval(interval: str) -> None:
    with pytest.raises(ValidationError, match="greater than zero"):
        BoxSettings(refresh_interval=interval)
