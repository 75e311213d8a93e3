"""Exception hierarchy surfaced by a recording session."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import ProcessKind


class ScreencastError(Exception):
    """Base class for fatal session conditions."""

    exit_code = 1


class PortError(RuntimeError):
    """An external tool behind a capability port failed."""


class ResolutionError(ScreencastError):
    exit_code = 3


class GeometryUnavailable(ResolutionError):
    def __init__(self, window: str, reason: str = "window no longer exists") -> None:
        super().__init__(f"Cannot measure window {window}: {reason}")
        self.window = window
        self.reason = reason


class ProcessStartFailed(ScreencastError):
    exit_code = 4

    def __init__(self, kind: "ProcessKind", reason: str) -> None:
        super().__init__(f"Failed to start {kind.value}: {reason}")
        self.kind = kind
        self.reason = reason


class DirectiveDispatchError(ScreencastError):
    exit_code = 5

    def __init__(self, line: int, reason: str) -> None:
        super().__init__(f"Line {line}: {reason}")
        self.line = line
        self.reason = reason


class DirectivePayloadInvalid(DirectiveDispatchError):
    """A directive payload could not be interpreted, e.g. a bad sleep duration."""


class OperatorAborted(ScreencastError):
    exit_code = 130

    def __init__(self, reason: str = "interrupted by operator") -> None:
        super().__init__(reason)
        self.reason = reason
