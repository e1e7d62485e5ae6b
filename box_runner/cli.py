from __future__ import annotations

import json
import logging
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler

from box_runner.artifacts import read_summary
from box_runner.errors import ConfigError, SpawnError
from box_runner.models import resolve_config
from box_runner.runtime.shells import SHELL_CHOICES, build_shell_command
from box_runner.runtime.supervisor import RunResult, run_command

SPAWN_FAILURE_EXIT_CODE = 127
LOG_LEVELS = ["debug", "info", "warning", "error"]


def _configure_logging(level: str, console: Console) -> None:
    handler = RichHandler(console=console, show_path=False, markup=False)
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[handler],
        force=True,
    )


def _result_status(result: RunResult) -> str:
    if result.cancelled:
        return "cancelled"
    if result.success:
        return "success"
    if result.status == "signaled":
        return "signaled"
    return "failed"


def _emit_result(result: RunResult) -> None:
    if result.success:
        click.echo("Success!")
    elif result.status == "signaled":
        click.echo(f"Error: killed by {result.signal_name}")
    else:
        click.echo(f"Error: exit code {result.exit_code}")

    click.echo(f"STATUS={_result_status(result)}")
    click.echo(f"EXIT_CODE={result.exit_code}")
    if result.signal is not None:
        click.echo(f"SIGNAL={result.signal_name}")
    click.echo(f"STDOUT={result.stdout_path}")
    click.echo(f"STDERR={result.stderr_path}")
    click.echo(f"RUN_DIR={result.run_dir}")
    click.echo(f"SUMMARY={result.summary_path}")
    for warning in result.warnings:
        click.echo(f"WARNING={warning.describe()}")


@click.group(
    help=(
        "Box Runner CLI: run a command inside a live bordered box and keep "
        "its stdout and stderr on disk."
    )
)
def app() -> None:
    pass


@app.command(
    "run",
    context_settings={"ignore_unknown_options": True, "allow_interspersed_args": False},
)
@click.argument("command", nargs=-1, required=True, type=click.UNPROCESSED)
@click.option(
    "config_path",
    "--config",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="YAML run config. Defaults to $BOX_RUNNER_CONFIG when set.",
)
@click.option("output_dir", "--output-dir", type=click.Path(path_type=Path), default=None)
@click.option("height", "--height", type=click.IntRange(min=1), default=None, help="Box rows.")
@click.option("width", "--width", type=click.IntRange(min=10), default=None, help="Box columns.")
@click.option(
    "shell",
    "--shell",
    type=click.Choice(list(SHELL_CHOICES), case_sensitive=False),
    default=None,
    help="Interpret COMMAND as a single command string for this shell.",
)
@click.option(
    "transient",
    "--clear-box/--keep-box",
    default=None,
    help="Clear the box when the command finishes, or leave it on screen.",
)
@click.option(
    "log_level",
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default="warning",
    show_default=True,
)
def run(
    command: tuple[str, ...],
    config_path: Path | None,
    output_dir: Path | None,
    height: int | None,
    width: int | None,
    shell: str | None,
    transient: bool | None,
    log_level: str,
) -> None:
    """Run COMMAND with its ARGS, rendering output live and persisting both streams."""
    console = Console(stderr=True)
    _configure_logging(log_level, console)
    try:
        config = resolve_config(config_path).with_overrides(
            output_dir=output_dir,
            box_height=height,
            box_width=width,
            box_transient=transient,
        )
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    try:
        argv = build_shell_command(" ".join(command), shell) if shell else list(command)
        result = run_command(argv, config, console=console)
    except SpawnError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(SPAWN_FAILURE_EXIT_CODE) from exc

    _emit_result(result)
    raise SystemExit(result.shell_exit_code())


@app.command("show")
@click.argument("run_dir", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option("as_json", "--json", is_flag=True, default=False)
@click.option(
    "stream",
    "--stream",
    type=click.Choice(["stdout", "stderr"]),
    default=None,
    help="Write one persisted stream to stdout, byte for byte.",
)
def show(run_dir: Path, as_json: bool, stream: str | None) -> None:
    """Inspect a finished run."""
    if stream is not None:
        stream_path = run_dir / f"{stream}.log"
        if not stream_path.exists():
            raise click.ClickException(f"Missing stream file: {stream_path}")
        output = click.get_binary_stream("stdout")
        output.write(stream_path.read_bytes())
        output.flush()
        return

    summary_path = run_dir / "summary.json"
    if not summary_path.exists():
        raise click.ClickException(f"Missing summary file: {summary_path}")
    try:
        payload = read_summary(run_dir)
    except ValueError as exc:
        raise click.ClickException(str(exc)) from exc
    payload["run_dir"] = str(run_dir.resolve())

    if as_json:
        click.echo(json.dumps(payload, indent=2, sort_keys=True))
        return

    command = payload.get("command")
    lines = [
        f"RUN_DIR={run_dir.resolve()}",
        f"STATUS={payload.get('status', 'unknown')}",
        f"EXIT_CODE={payload.get('exit_code')}",
    ]
    if isinstance(command, list):
        lines.append(f"COMMAND={' '.join(str(part) for part in command)}")
    if payload.get("signal_name"):
        lines.append(f"SIGNAL={payload['signal_name']}")
    if payload.get("cancelled"):
        lines.append("CANCELLED=true")
    lines.append(f"STDOUT={payload.get('stdout')} ({payload.get('stdout_bytes', 0)} bytes)")
    lines.append(f"STDERR={payload.get('stderr')} ({payload.get('stderr_bytes', 0)} bytes)")
    warnings = payload.get("warnings")
    if isinstance(warnings, list):
        lines.extend(f"WARNING={warning}" for warning in warnings)
    if payload.get("duration_seconds") is not None:
        lines.append(f"DURATION={payload['duration_seconds']}s")

    for line in lines:
        click.echo(line)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
