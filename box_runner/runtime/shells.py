from __future__ import annotations

import platform
import shutil

from box_runner.errors import SpawnError

SHELL_CHOICES = ("auto", "bash", "sh", "zsh", "fish", "pwsh", "cmd")


def build_shell_command(command: str, shell: str = "auto") -> list[str]:
    """Wrap a command string so that ``shell`` interprets it."""
    target = shell.lower()
    if target not in SHELL_CHOICES:
        raise ValueError(f"Unsupported shell '{shell}'. Try one of: {', '.join(SHELL_CHOICES)}")
    if target == "pwsh":
        return ["pwsh" if shutil.which("pwsh") else "powershell", "-NoProfile", "-Command", command]
    if target == "cmd":
        return ["cmd", "/C", command]
    if target != "auto":
        return [target, "-c", command]

    if platform.system() == "Windows":
        if shutil.which("powershell"):
            return ["powershell", "-NoProfile", "-Command", command]
        return ["cmd", "/C", command]

    for candidate in ("bash", "sh"):
        if shutil.which(candidate):
            return [candidate, "-c", command]
    raise SpawnError(command, "no supported shell found (expected bash or sh)")
