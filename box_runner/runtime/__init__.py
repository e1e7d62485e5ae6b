"""Capture pipeline: stream readers, sinks, the box renderer and the supervisor."""

from box_runner.runtime.chunks import CaptureWarning, Chunk, EndOfStream, Origin, StreamError
from box_runner.runtime.renderer import BoxRenderer
from box_runner.runtime.supervisor import ABNORMAL_EXIT_CODE, RunResult, run_command
from box_runner.runtime.window import DisplayWindow

__all__ = [
    "ABNORMAL_EXIT_CODE",
    "BoxRenderer",
    "CaptureWarning",
    "Chunk",
    "DisplayWindow",
    "EndOfStream",
    "Origin",
    "RunResult",
    "StreamError",
    "run_command",
]
