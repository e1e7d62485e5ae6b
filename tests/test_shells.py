from __future__ import annotations

import pytest

from box_runner.errors import SpawnError
from box_runner.runtime import shells
from box_runner.runtime.shells import build_shell_command


def test_named_posix_shells_take_command_string() -> None:
    assert build_shell_command("echo hi | wc -l", "bash") == ["bash", "-c", "echo hi | wc -l"]
    assert build_shell_command("echo hi", "zsh") == ["zsh", "-c", "echo hi"]


def test_cmd_shell() -> None:
    assert build_shell_command("dir", "cmd") == ["cmd", "/C", "dir"]


def test_unknown_shell_is_rejected() -> None:
    with pytest.raises(ValueError, match="Unsupported shell"):
        build_shell_command("echo hi", "tcsh")


def test_auto_prefers_bash_then_sh(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(shells.platform, "system", lambda: "Linux")
    monkeypatch.setattr(shells.shutil, "which", lambda name: "/bin/sh" if name == "sh" else None)

    assert build_shell_command("true") == ["sh", "-c", "true"]


def test_auto_without_any_shell_is_a_spawn_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(shells.platform, "system", lambda: "Linux")
    monkeypatch.setattr(shells.shutil, "which", lambda name: None)

    with pytest.raises(SpawnError, match="no supported shell"):
        build_shell_command("true")


def test_auto_on_windows_uses_powershell(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(shells.platform, "system", lambda: "Windows")
    monkeypatch.setattr(shells.shutil, "which", lambda name: "powershell.exe")

    assert build_shell_command("Get-Date") == [
        "powershell",
        "-NoProfile",
        "-Command",
        "Get-Date",
    ]
