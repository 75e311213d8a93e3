"""Domain models for a recording session."""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass
from pathlib import Path
from typing import NewType, Optional, Union

from .errors import DirectivePayloadInvalid

WindowHandle = NewType("WindowHandle", str)


@dataclass(frozen=True, slots=True)
class Command:
    """A shell command line typed into the target and submitted."""

    text: str
    line: int = 0


@dataclass(frozen=True, slots=True)
class Key:
    """Discrete keypresses, sent with the overlay hidden around them."""

    keys: tuple[str, ...]
    line: int = 0


@dataclass(frozen=True, slots=True)
class Sleep:
    """A silent pause. The duration stays unparsed until dispatch."""

    raw: str
    line: int = 0

    @property
    def seconds(self) -> float:
        try:
            value = float(self.raw)
        except ValueError:
            raise DirectivePayloadInvalid(
                self.line, f"sleep duration {self.raw!r} is not a number"
            ) from None
        if not math.isfinite(value) or value < 0:
            raise DirectivePayloadInvalid(
                self.line, f"sleep duration {self.raw!r} must be a non-negative number"
            )
        return value


@dataclass(frozen=True, slots=True)
class Pause:
    """Wait for the operator. ``automatic`` marks an autopause break."""

    line: int = 0
    automatic: bool = False


@dataclass(frozen=True, slots=True)
class Toggle:
    """Flip the keystroke overlay without sending other input."""

    line: int = 0


Directive = Union[Command, Key, Sleep, Pause, Toggle]


@dataclass(frozen=True, slots=True)
class Geometry:
    """Absolute position and size of a window at resolution time."""

    x: int
    y: int
    width: int
    height: int

    def as_screenkey(self) -> str:
        return f"{self.width}x{self.height}+{self.x}+{self.y}"


class ProcessKind(enum.Enum):
    OVERLAY = "overlay"
    TERMINAL_RECORDER = "terminal recorder"
    VIDEO_CAPTURE = "video capture"


class ProcessState(enum.Enum):
    NOT_STARTED = "not started"
    RUNNING = "running"
    STOPPED = "stopped"


@dataclass(slots=True)
class ProcessHandle:
    """Tracks one capture process through NOT_STARTED -> RUNNING -> STOPPED."""

    kind: ProcessKind
    pid: Optional[int] = None
    state: ProcessState = ProcessState.NOT_STARTED

    def mark_running(self, pid: int) -> None:
        if self.state is not ProcessState.NOT_STARTED:
            raise ValueError(f"{self.kind.value} handle is {self.state.value}; handles are not reused")
        self.pid = pid
        self.state = ProcessState.RUNNING

    def mark_stopped(self) -> None:
        self.state = ProcessState.STOPPED

    @property
    def running(self) -> bool:
        return self.state is ProcessState.RUNNING


def new_process_handles() -> dict[ProcessKind, ProcessHandle]:
    return {kind: ProcessHandle(kind) for kind in ProcessKind}


@dataclass(frozen=True, slots=True)
class SessionOutputs:
    """Files produced by a session. The overlay writes nothing."""

    video: Path
    transcript: Path

    def existing(self) -> list[Path]:
        return [path for path in (self.video, self.transcript) if path.exists()]
