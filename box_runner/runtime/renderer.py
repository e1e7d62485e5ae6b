from __future__ import annotations

import time
from collections.abc import Callable
from types import TracebackType

from rich import box
from rich.console import Console, Group, RenderableType
from rich.live import Live
from rich.panel import Panel
from rich.text import Text

from box_runner.models import BoxSettings
from box_runner.runtime.chunks import Chunk, Origin
from box_runner.runtime.window import DisplayLine, DisplayWindow

SPINNER_FRAMES = "/|\\-"


class BoxRenderer:
    """Draws the live output box. Not thread-safe: one thread drives it."""

    def __init__(
        self,
        console: Console,
        settings: BoxSettings | None = None,
        *,
        title: str = "",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.settings = settings if settings is not None else BoxSettings()
        self.window = DisplayWindow(self.settings.height)
        self.title = title
        self.status = "Running"
        self._console = console
        self._clock = clock
        self._styles = {
            Origin.OUT: self.settings.stdout_style,
            Origin.ERR: self.settings.stderr_style,
        }
        self._frame = 0
        self._last_refresh: float | None = None
        self._live: Live | None = None

    def start(self) -> None:
        if self._live is not None:
            return
        self._live = Live(
            self.render(),
            console=self._console,
            auto_refresh=False,
            transient=self.settings.transient,
            redirect_stdout=False,
            redirect_stderr=False,
        )
        self._live.start(refresh=True)
        self._last_refresh = self._clock()

    def update(self, chunk: Chunk) -> None:
        self.window.feed(chunk.origin, chunk.data)
        self._refresh(force=False)

    def end_stream(self, origin: Origin) -> None:
        self.window.finish(origin)
        self._refresh(force=False)

    def mark_exited(self, status: str) -> None:
        self.status = status
        self._refresh(force=True)

    def tick(self) -> None:
        self._refresh(force=False)

    def close(self) -> None:
        if self._live is None:
            return
        live, self._live = self._live, None
        live.update(self.render(), refresh=True)
        live.stop()

    def __enter__(self) -> BoxRenderer:
        self.start()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def render(self) -> RenderableType:
        rows = [self._render_line(line) for line in self.window.lines()]
        rows.extend(Text(" ") for _ in range(self.settings.height - len(rows)))
        return Panel(
            Group(*rows),
            title=self._render_title(),
            title_align="left",
            box=box.ROUNDED,
            border_style=self.settings.border_style,
            width=self.settings.width,
            height=self.settings.height + 2,
            padding=(0, 1),
        )

    def _render_title(self) -> Text:
        spinner = SPINNER_FRAMES[self._frame] if self.status == "Running" else ""
        parts = [self.status, spinner, self.title]
        return Text(" ".join(part for part in parts if part), style="bold")

    def _render_line(self, line: DisplayLine) -> Text:
        return Text.from_ansi(
            line.text,
            style=self._styles[line.origin],
            no_wrap=True,
            overflow=self.settings.overflow,
        )

    def _refresh(self, *, force: bool) -> None:
        if self._live is None:
            return
        now = self._clock()
        if (
            not force
            and self._last_refresh is not None
            and now - self._last_refresh < self.settings.refresh_seconds
        ):
            return
        self._frame = (self._frame + 1) % len(SPINNER_FRAMES)
        self._live.update(self.render(), refresh=True)
        self._last_refresh = now
