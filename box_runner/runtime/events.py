from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Literal

EventKind = Literal[
    "spawned",
    "stream_closed",
    "stream_error",
    "write_error",
    "exited",
    "cancelled",
]


@dataclass(slots=True)
class RunEvent:
    run_id: str
    kind: EventKind
    origin: str | None = None
    detail: str = ""
    exit_code: int | None = None

    def to_json(self) -> str:
        return json.dumps(asdict(self), sort_keys=True)


def append_event(path: Path, event: RunEvent) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as handle:
        handle.write(event.to_json())
        handle.write("\n")


def read_events(path: Path) -> list[dict[str, object]]:
    if not path.exists():
        return []
    return [
        json.loads(line)
        for line in path.read_text(encoding="utf-8").splitlines()
        if line.strip()
    ]
