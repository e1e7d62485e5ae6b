from __future__ import annotations

import re

_DURATION_PATTERN = re.compile(r"^\d+(\.\d+)?(ms|s)$")


def is_duration(value: str) -> bool:
    return bool(_DURATION_PATTERN.match(value))


def duration_to_seconds(value: str) -> float:
    if value.endswith("ms"):
        return float(value[:-2]) / 1000.0
    if value.endswith("s"):
        return float(value[:-1])
    raise ValueError(f"Unsupported duration format: {value}")
