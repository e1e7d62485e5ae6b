from __future__ import annotations


class BoxRunnerError(RuntimeError):
    """Base class for failures of the runner itself."""


class SpawnError(BoxRunnerError):
    """Raised when the child command cannot be started."""

    def __init__(self, command: str, reason: str) -> None:
        super().__init__(f"cannot run {command!r}: {reason}")
        self.command = command
        self.reason = reason


class ConfigError(BoxRunnerError):
    """Raised when a run config file cannot be loaded."""
