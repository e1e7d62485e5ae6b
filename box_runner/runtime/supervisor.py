from __future__ import annotations

import logging
import os
import queue
import shlex
import signal
import subprocess
import threading
import time
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Literal

from rich.console import Console

from box_runner.artifacts import (
    RunLayout,
    create_run_layout,
    discard_run_layout,
    run_timestamp,
    write_summary,
)
from box_runner.errors import SpawnError
from box_runner.models import RunConfig
from box_runner.runtime.chunks import (
    CaptureWarning,
    Chunk,
    Origin,
    PipelineEvent,
    ProcessExited,
    StreamError,
)
from box_runner.runtime.events import RunEvent, append_event
from box_runner.runtime.reader import start_reader
from box_runner.runtime.renderer import BoxRenderer
from box_runner.runtime.sink import StreamSink

logger = logging.getLogger(__name__)

ABNORMAL_EXIT_CODE = -1
"""``RunResult.exit_code`` of a child killed by a signal; see ``RunResult.signal``."""

TerminationStatus = Literal["exited", "signaled"]


@dataclass(frozen=True, slots=True)
class RunResult:
    command: tuple[str, ...]
    exit_code: int
    status: TerminationStatus
    signal: int | None
    signal_name: str | None
    cancelled: bool
    run_id: str
    run_dir: Path
    stdout_path: Path
    stderr_path: Path
    stdout_bytes: int
    stderr_bytes: int
    events_path: Path
    summary_path: Path
    warnings: tuple[CaptureWarning, ...]
    duration_seconds: float

    @property
    def success(self) -> bool:
        return self.status == "exited" and self.exit_code == 0

    def shell_exit_code(self) -> int:
        """Exit status for this process: the child's code, or 128 + signal."""
        if self.status == "signaled" and self.signal is not None:
            return 128 + self.signal
        return self.exit_code


def normalize_exit_status(returncode: int) -> tuple[TerminationStatus, int, int | None]:
    if returncode < 0:
        return "signaled", ABNORMAL_EXIT_CODE, -returncode
    return "exited", returncode, None


def signal_name(signum: int | None) -> str | None:
    if signum is None:
        return None
    try:
        return signal.Signals(signum).name
    except ValueError:
        return f"signal {signum}"


def describe_termination(status: TerminationStatus, exit_code: int, signum: int | None) -> str:
    if status == "signaled":
        return f"Killed by {signal_name(signum)}"
    if exit_code == 0:
        return "Done"
    return f"Failed with exit code {exit_code}"


def _spawn(argv: list[str], config: RunConfig) -> subprocess.Popen[bytes]:
    env = {**os.environ, **config.env} if config.env else None
    try:
        return subprocess.Popen(
            argv,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            bufsize=0,
            cwd=config.cwd,
            env=env,
        )
    except OSError as exc:
        raise SpawnError(argv[0], exc.strerror or str(exc)) from exc


class _CaptureLoop:
    """Feeds the renderer from the merged inbox until the run has settled.

    The run settles once three independent signals have arrived in any order:
    a terminal event for each stream and the child's exit.
    """

    def __init__(
        self,
        *,
        process: subprocess.Popen[bytes],
        inbox: queue.Queue[PipelineEvent],
        renderer: BoxRenderer,
        layout: RunLayout,
        readers: list[threading.Thread],
        kill_timeout: float,
    ) -> None:
        self.process = process
        self.inbox = inbox
        self.renderer = renderer
        self.layout = layout
        self.readers = readers
        self.kill_timeout = kill_timeout
        self.open_streams = set(Origin)
        self.returncode: int | None = None
        self.cancelled = False
        self._kill_timer: threading.Timer | None = None
        self._events_enabled = True

    def run(self) -> int:
        while self.open_streams or self.returncode is None:
            try:
                self._step()
            except KeyboardInterrupt:
                self._cancel()
        assert self.returncode is not None
        return self.returncode

    def release(self) -> None:
        """Stop the kill timer and kill a child that outlived the capture loop."""
        if self._kill_timer is not None:
            self._kill_timer.cancel()
        if self.process.poll() is None:
            logger.warning("capture stopped early, killing child %d", self.process.pid)
            self._kill()

    def record(self, event: RunEvent) -> None:
        if not self._events_enabled:
            return
        try:
            append_event(self.layout.events_path, event)
        except OSError as exc:
            logger.warning("event log disabled: %s", exc)
            self._events_enabled = False

    def _step(self) -> None:
        try:
            event = self.inbox.get(timeout=self.renderer.settings.refresh_seconds)
        except queue.Empty:
            self.renderer.tick()
            self._settle_if_quiet()
            return
        if isinstance(event, Chunk):
            self.renderer.update(event)
        elif isinstance(event, ProcessExited):
            self.returncode = event.returncode
            self._on_exit(event.returncode)
        else:
            self.open_streams.discard(event.origin)
            self.renderer.end_stream(event.origin)
            if isinstance(event, StreamError):
                self.record(
                    RunEvent(
                        run_id=self.layout.run_id,
                        kind="stream_error",
                        origin=event.origin.value,
                        detail=event.message,
                    )
                )
            else:
                self.record(
                    RunEvent(
                        run_id=self.layout.run_id,
                        kind="stream_closed",
                        origin=event.origin.value,
                    )
                )

    def _on_exit(self, returncode: int) -> None:
        status, exit_code, signum = normalize_exit_status(returncode)
        logger.info("child %d %s", self.process.pid, describe_termination(status, exit_code, signum))
        self.renderer.mark_exited(describe_termination(status, exit_code, signum))
        self.record(
            RunEvent(
                run_id=self.layout.run_id,
                kind="exited",
                detail=status if signum is None else f"{status} {signal_name(signum)}",
                exit_code=exit_code,
            )
        )

    def _settle_if_quiet(self) -> None:
        # Terminal events interrupted mid-delivery are recovered from thread state.
        if any(reader.is_alive() for reader in self.readers) or not self.inbox.empty():
            return
        returncode = self.process.poll()
        if returncode is None:
            return
        if self.returncode is None:
            self.returncode = returncode
            self._on_exit(returncode)
        for origin in list(self.open_streams):
            self.open_streams.discard(origin)
            self.renderer.end_stream(origin)

    def _cancel(self) -> None:
        if self.cancelled:
            logger.warning("interrupted again, killing child %d", self.process.pid)
            self._kill()
            return
        self.cancelled = True
        logger.warning("interrupted, terminating child %d", self.process.pid)
        self.renderer.mark_exited("Cancelling")
        self.record(RunEvent(run_id=self.layout.run_id, kind="cancelled"))
        if self.process.poll() is None:
            try:
                self.process.terminate()
            except ProcessLookupError:
                pass
        self._kill_timer = threading.Timer(self.kill_timeout, self._kill)
        self._kill_timer.daemon = True
        self._kill_timer.start()

    def _kill(self) -> None:
        if self.process.poll() is not None:
            return
        try:
            self.process.kill()
        except ProcessLookupError:
            pass


def run_command(
    command: Sequence[str],
    config: RunConfig | None = None,
    *,
    console: Console | None = None,
    title: str | None = None,
) -> RunResult:
    """Run ``command`` inside the live output box and persist both streams.

    ``command[0]`` is executed directly with ``command[1:]`` as its arguments;
    no shell is involved. Raises :class:`SpawnError` if the child cannot be
    started, in which case nothing is persisted. Every other failure during
    capture is reported through ``RunResult.warnings``.
    """
    argv = [str(part) for part in command]
    if not argv:
        raise SpawnError("", "no command given")
    resolved = config if config is not None else RunConfig()
    display_command = shlex.join(argv)

    layout = create_run_layout(command_name=argv[0], output_dir=resolved.output_dir)
    started_at = run_timestamp(datetime.now(UTC))
    started = time.monotonic()
    try:
        process = _spawn(argv, resolved)
    except SpawnError:
        discard_run_layout(layout)
        raise
    assert process.stdout is not None
    assert process.stderr is not None
    logger.info("spawned %s as pid %d, capturing to %s", display_command, process.pid, layout.run_dir)

    inbox: queue.Queue[PipelineEvent] = queue.Queue()
    sinks = {
        origin: StreamSink(
            origin,
            layout.stream_path(origin),
            inbox.put,
            retries=resolved.write_retries,
        )
        for origin in Origin
    }
    readers = [
        start_reader(Origin.OUT, process.stdout, sinks[Origin.OUT], resolved.chunk_size),
        start_reader(Origin.ERR, process.stderr, sinks[Origin.ERR], resolved.chunk_size),
    ]
    waiter = threading.Thread(
        target=lambda: inbox.put(ProcessExited(returncode=process.wait())),
        name="box-runner-wait",
        daemon=True,
    )
    waiter.start()

    renderer = BoxRenderer(
        console if console is not None else Console(stderr=True),
        resolved.box,
        title=title if title is not None else display_command,
    )
    loop = _CaptureLoop(
        process=process,
        inbox=inbox,
        renderer=renderer,
        layout=layout,
        readers=readers,
        kill_timeout=resolved.kill_timeout_seconds,
    )
    loop.record(RunEvent(run_id=layout.run_id, kind="spawned", detail=display_command))
    try:
        with renderer:
            returncode = loop.run()
    finally:
        loop.release()
        for reader in readers:
            reader.join()

    warnings = tuple(warning for origin in Origin for warning in sinks[origin].warnings)
    for warning in warnings:
        if warning.kind == "write_error":
            loop.record(
                RunEvent(
                    run_id=layout.run_id,
                    kind="write_error",
                    origin=warning.origin.value,
                    detail=warning.message,
                )
            )

    status, exit_code, signum = normalize_exit_status(returncode)
    result = RunResult(
        command=tuple(argv),
        exit_code=exit_code,
        status=status,
        signal=signum,
        signal_name=signal_name(signum),
        cancelled=loop.cancelled,
        run_id=layout.run_id,
        run_dir=layout.run_dir,
        stdout_path=layout.stdout_path,
        stderr_path=layout.stderr_path,
        stdout_bytes=sinks[Origin.OUT].bytes_written,
        stderr_bytes=sinks[Origin.ERR].bytes_written,
        events_path=layout.events_path,
        summary_path=layout.summary_path,
        warnings=warnings,
        duration_seconds=round(time.monotonic() - started, 3),
    )
    try:
        write_summary(layout, build_summary(result, started_at=started_at))
    except OSError as exc:
        logger.warning("could not write %s: %s", layout.summary_path, exc)
    return result


def build_summary(result: RunResult, *, started_at: str) -> dict[str, object]:
    return {
        "run_id": result.run_id,
        "command": list(result.command),
        "status": result.status,
        "success": result.success,
        "exit_code": result.exit_code,
        "signal": result.signal,
        "signal_name": result.signal_name,
        "cancelled": result.cancelled,
        "stdout": str(result.stdout_path),
        "stderr": str(result.stderr_path),
        "stdout_bytes": result.stdout_bytes,
        "stderr_bytes": result.stderr_bytes,
        "events": str(result.events_path),
        "warnings": [warning.describe() for warning in result.warnings],
        "started_at": started_at,
        "duration_seconds": result.duration_seconds,
    }
