from __future__ import annotations

import logging
import threading
from typing import BinaryIO, Protocol

from box_runner.runtime.chunks import Chunk, EndOfStream, Origin, StreamError, StreamEvent

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 65536


class EventSink(Protocol):
    def accept(self, event: StreamEvent) -> None: ...


def read_stream(
    origin: Origin,
    source: BinaryIO,
    sink: EventSink,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> None:
    """Forward every read from ``source`` to ``sink`` until EOF or a read error.

    ``source`` should be unbuffered so that a read returns as soon as any
    bytes are available instead of waiting to fill ``chunk_size``.
    """
    sequence = 0
    try:
        while True:
            data = source.read(chunk_size)
            if not data:
                break
            sink.accept(Chunk(origin=origin, data=data, sequence=sequence))
            sequence += 1
    except (OSError, ValueError) as exc:
        logger.warning("reading %s failed after %d chunks: %s", origin.value, sequence, exc)
        sink.accept(StreamError(origin=origin, message=str(exc) or type(exc).__name__))
        return
    finally:
        try:
            source.close()
        except OSError as exc:
            logger.debug("closing %s pipe failed: %s", origin.value, exc)
    logger.debug("%s reached end of stream after %d chunks", origin.value, sequence)
    sink.accept(EndOfStream(origin=origin))


def start_reader(
    origin: Origin,
    source: BinaryIO,
    sink: EventSink,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> threading.Thread:
    thread = threading.Thread(
        target=read_stream,
        kwargs={"origin": origin, "source": source, "sink": sink, "chunk_size": chunk_size},
        name=f"box-runner-{origin.value}",
        daemon=True,
    )
    thread.start()
    return thread
