"""Events flowing from the stream readers to the renderer."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Literal, Union


class Origin(str, Enum):
    OUT = "stdout"
    ERR = "stderr"


@dataclass(frozen=True, slots=True)
class Chunk:
    """Bytes returned by a single read; may hold partial or multiple lines."""

    origin: Origin
    data: bytes
    sequence: int


@dataclass(frozen=True, slots=True)
class EndOfStream:
    origin: Origin


@dataclass(frozen=True, slots=True)
class StreamError:
    """A failed read. Terminal for its stream, like EndOfStream."""

    origin: Origin
    message: str


@dataclass(frozen=True, slots=True)
class ProcessExited:
    returncode: int


@dataclass(frozen=True, slots=True)
class CaptureWarning:
    origin: Origin
    kind: Literal["read_error", "write_error"]
    message: str

    def describe(self) -> str:
        return f"{self.origin.value} {self.kind}: {self.message}"


StreamEvent = Union[Chunk, EndOfStream, StreamError]
PipelineEvent = Union[Chunk, EndOfStream, StreamError, ProcessExited]
