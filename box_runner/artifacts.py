from __future__ import annotations

import json
import re
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from box_runner.runtime.chunks import Origin

RUNS_DIR_NAME = ".box_runner_runs"
_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9_.-]+")


@dataclass(slots=True)
class RunLayout:
    run_id: str
    run_dir: Path
    stdout_path: Path
    stderr_path: Path
    events_path: Path
    summary_path: Path

    def stream_path(self, origin: Origin) -> Path:
        return self.stdout_path if origin.value == "stdout" else self.stderr_path


def run_timestamp(now: datetime | None = None) -> str:
    resolved_now = now.astimezone(UTC) if now is not None else datetime.now(UTC)
    return resolved_now.strftime("%Y%m%dT%H%M%SZ")


def build_run_id(command_name: str, now: datetime | None = None, suffix: str | None = None) -> str:
    stem = _UNSAFE_NAME_CHARS.sub("_", Path(command_name).name).strip("_.") or "command"
    token = suffix if suffix is not None else uuid.uuid4().hex[:6]
    return f"{run_timestamp(now)}-{stem}-{token}"


def create_run_layout(*, command_name: str, output_dir: Path | None) -> RunLayout:
    base = output_dir.resolve() if output_dir is not None else Path.cwd()
    run_id = build_run_id(command_name)
    run_dir = base / RUNS_DIR_NAME / run_id
    run_dir.mkdir(parents=True, exist_ok=False)
    return RunLayout(
        run_id=run_id,
        run_dir=run_dir,
        stdout_path=run_dir / "stdout.log",
        stderr_path=run_dir / "stderr.log",
        events_path=run_dir / "events.jsonl",
        summary_path=run_dir / "summary.json",
    )


def discard_run_layout(layout: RunLayout) -> None:
    """Remove a run directory that never received any artifacts.

    The runs directory above it goes too when no other run is left in it.
    """
    for directory in (layout.run_dir, layout.run_dir.parent):
        try:
            directory.rmdir()
        except OSError:
            return


def write_summary(layout: RunLayout, payload: dict[str, object]) -> None:
    layout.summary_path.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")


def read_summary(run_dir: Path) -> dict[str, object]:
    summary_path = run_dir / "summary.json"
    payload = json.loads(summary_path.read_text(encoding="utf-8"))
    if not isinstance(payload, dict):
        raise ValueError(f"Summary at {summary_path} must be a JSON object")
    return payload
