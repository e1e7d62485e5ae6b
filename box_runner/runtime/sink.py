from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path
from typing import BinaryIO

from box_runner.runtime.chunks import (
    CaptureWarning,
    Chunk,
    EndOfStream,
    Origin,
    StreamError,
    StreamEvent,
)

logger = logging.getLogger(__name__)


class StreamSink:
    """Persists one origin's chunks to its file and forwards every event.

    Only the reader thread of ``origin`` calls :meth:`accept`. After an
    unrecoverable write failure nothing more is written, so the file always
    holds an exact prefix of the stream.
    """

    def __init__(
        self,
        origin: Origin,
        path: Path,
        forward: Callable[[StreamEvent], None],
        retries: int = 1,
    ) -> None:
        self.origin = origin
        self.path = path
        self.bytes_written = 0
        self.warnings: list[CaptureWarning] = []
        self._forward = forward
        self._retries = retries
        self._handle: BinaryIO | None = None
        try:
            self._handle = path.open("wb")
        except OSError as exc:
            self._fail(f"cannot open {path}: {exc}")

    @property
    def persisting(self) -> bool:
        return self._handle is not None

    def accept(self, event: StreamEvent) -> None:
        if isinstance(event, Chunk):
            self._persist(event)
        else:
            self._close()
            if isinstance(event, StreamError):
                self.warnings.append(
                    CaptureWarning(origin=self.origin, kind="read_error", message=event.message)
                )
        self._forward(event)

    def _persist(self, chunk: Chunk) -> None:
        if self._handle is None:
            return
        # A retry resumes at the offset reached so far, never rewriting bytes.
        offset = 0
        error: OSError | None = None
        for _ in range(self._retries + 1):
            try:
                view = memoryview(chunk.data)
                while offset < len(view):
                    written = self._handle.write(view[offset:]) or 0
                    offset += written
                    self.bytes_written += written
                self._handle.flush()
                return
            except OSError as exc:
                error = exc
                logger.debug("retrying %s write after %s", self.origin.value, exc)
        self._fail(f"write failed at byte {self.bytes_written} of {self.path}: {error}")

    def _close(self) -> None:
        if self._handle is None:
            return
        handle, self._handle = self._handle, None
        try:
            handle.close()
        except OSError as exc:
            self._record_write_error(f"closing {self.path} failed: {exc}")

    def _fail(self, message: str) -> None:
        self._record_write_error(message)
        if self._handle is not None:
            handle, self._handle = self._handle, None
            try:
                handle.close()
            except OSError as exc:
                logger.debug("closing %s after failure: %s", self.path, exc)

    def _record_write_error(self, message: str) -> None:
        logger.warning("%s persistence stopped: %s", self.origin.value, message)
        self.warnings.append(CaptureWarning(origin=self.origin, kind="write_error", message=message))
