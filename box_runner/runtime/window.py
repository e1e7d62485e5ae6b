from __future__ import annotations

import codecs
from collections import deque
from dataclasses import dataclass

from box_runner.runtime.chunks import Origin


@dataclass(slots=True)
class DisplayLine:
    origin: Origin
    text: str = ""
    # A trailing CR only rewinds the line once more text arrives, so a CRLF
    # split across two reads still ends the line cleanly.
    pending_cr: bool = False

    def write(self, piece: str) -> None:
        if not piece:
            return
        if self.pending_cr:
            self.text = ""
            self.pending_cr = False
        if piece.endswith("\r"):
            piece = piece[:-1]
            self.pending_cr = True
        head, carriage, tail = piece.rpartition("\r")
        if carriage:
            self.text = tail
        else:
            self.text += head + tail


class DisplayWindow:
    """The most recent ``height`` lines of both streams, in arrival order."""

    def __init__(self, height: int) -> None:
        if height < 1:
            raise ValueError("DisplayWindow height must be at least 1")
        self.height = height
        self._lines: deque[DisplayLine] = deque(maxlen=height)
        self._open: dict[Origin, DisplayLine] = {}
        self._decoders = {
            origin: codecs.getincrementaldecoder("utf-8")(errors="replace") for origin in Origin
        }

    def feed(self, origin: Origin, data: bytes) -> None:
        self._feed_text(origin, self._decoders[origin].decode(data))

    def finish(self, origin: Origin) -> None:
        self._feed_text(origin, self._decoders[origin].decode(b"", final=True))
        line = self._open.pop(origin, None)
        if line is not None:
            line.pending_cr = False

    def lines(self) -> list[DisplayLine]:
        return list(self._lines)

    def __len__(self) -> int:
        return len(self._lines)

    def _feed_text(self, origin: Origin, text: str) -> None:
        if not text:
            return
        *complete, tail = text.split("\n")
        for piece in complete:
            line = self._current(origin)
            line.write(piece)
            line.pending_cr = False
            del self._open[origin]
        if tail:
            self._current(origin).write(tail)

    def _current(self, origin: Origin) -> DisplayLine:
        line = self._open.get(origin)
        if line is None:
            line = DisplayLine(origin=origin)
            self._lines.append(line)
            self._open[origin] = line
        elif not any(shown is line for shown in self._lines):
            # Pushed out by the other stream while still open; bring it back as the newest line.
            self._lines.append(line)
        return line
