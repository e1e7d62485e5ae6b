from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

from box_runner.artifacts import (
    RUNS_DIR_NAME,
    build_run_id,
    create_run_layout,
    discard_run_layout,
    read_summary,
    write_summary,
)
from box_runner.runtime.chunks import Origin


def test_build_run_id_is_timestamped_and_sanitized() -> None:
    now = datetime(2025, 1, 2, 3, 4, 5, tzinfo=UTC)

    assert build_run_id("/usr/bin/python3", now=now, suffix="abc123") == (
        "20250102T030405Z-python3-abc123"
    )
    assert build_run_id("my tool!", now=now, suffix="x") == "20250102T030405Z-my_tool-x"
    assert build_run_id("///", now=now, suffix="x") == "20250102T030405Z-command-x"


def test_create_run_layout_places_runs_under_output_dir(tmp_path: Path) -> None:
    layout = create_run_layout(command_name="make", output_dir=tmp_path)

    assert layout.run_dir.is_dir()
    assert layout.run_dir.parent == tmp_path.resolve() / RUNS_DIR_NAME
    assert layout.stream_path(Origin.OUT) == layout.run_dir / "stdout.log"
    assert layout.stream_path(Origin.ERR) == layout.run_dir / "stderr.log"
    assert not layout.stdout_path.exists()


def test_create_run_layout_never_reuses_a_directory(tmp_path: Path) -> None:
    first = create_run_layout(command_name="make", output_dir=tmp_path)
    second = create_run_layout(command_name="make", output_dir=tmp_path)

    assert first.run_dir != second.run_dir


def test_create_run_layout_defaults_to_working_directory(
    tmp_path: Path, monkeypatch: object
) -> None:
    monkeypatch.chdir(tmp_path)  # type: ignore[attr-defined]

    layout = create_run_layout(command_name="ls", output_dir=None)

    assert layout.run_dir.parent.parent.resolve() == tmp_path.resolve()


def test_discard_run_layout_removes_empty_directory(tmp_path: Path) -> None:
    layout = create_run_layout(command_name="make", output_dir=tmp_path)

    discard_run_layout(layout)

    assert not layout.run_dir.exists()


def test_summary_round_trip(tmp_path: Path) -> None:
    layout = create_run_layout(command_name="make", output_dir=tmp_path)

    write_summary(layout, {"exit_code": 0, "status": "exited"})

    assert read_summary(layout.run_dir) == {"exit_code": 0, "status": "exited"}


def test_discard_run_layout_removes_empty_runs_directory(tmp_path: Path) -> None:
    layout = create_run_layout(command_name="make", output_dir=tmp_path)

    discard_run_layout(layout)

    assert not (tmp_path / RUNS_DIR_NAME).exists()


def test_discard_run_layout_keeps_runs_directory_with_other_runs(tmp_path: Path) -> None:
    kept = create_run_layout(command_name="make", output_dir=tmp_path)
    discarded = create_run_layout(command_name="make", output_dir=tmp_path)

    discard_run_layout(discarded)

    assert not discarded.run_dir.exists()
    assert kept.run_dir.is_dir()
