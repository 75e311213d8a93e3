"""Capability ports the orchestrator drives.

Concrete X11 implementations live in :mod:`screencast.x11`; tests supply
recording fakes.
"""

from __future__ import annotations

import signal
from typing import Optional, Protocol, Sequence

from .models import Geometry, WindowHandle


class WindowSystem(Protocol):
    def active(self) -> WindowHandle: ...

    def select(self) -> WindowHandle: ...

    def focus(self, window: WindowHandle, sync: bool = True) -> None: ...

    def measure(self, window: WindowHandle) -> Geometry: ...


class InputInjector(Protocol):
    def type_text(self, text: str) -> None: ...

    def send_key(self, name: str) -> None: ...

    def send_chord(self, names: Sequence[str], hold: float) -> None: ...

    def release(self, names: Sequence[str]) -> None: ...

    def sleep(self, seconds: float) -> None: ...


class ProcessRunner(Protocol):
    def spawn(self, argv: Sequence[str], window: Optional[WindowHandle] = None) -> int: ...

    def terminate(
        self, pid: int, sig: int = signal.SIGTERM, timeout: float = 5.0
    ) -> None: ...

    def is_alive(self, pid: int) -> bool: ...


class Operator(Protocol):
    def await_acknowledgment(self, prompt: str) -> None: ...
