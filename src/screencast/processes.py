"""Start and stop the capture processes in a fixed order."""

from __future__ import annotations

import logging
import shlex
import signal
import time
from pathlib import Path
from typing import Callable, Mapping, Optional, Sequence

from .config import SessionSettings
from .errors import OperatorAborted, PortError, ProcessStartFailed
from .models import (
    Geometry,
    ProcessHandle,
    ProcessKind,
    WindowHandle,
    new_process_handles,
)
from .ports import ProcessRunner

logger = logging.getLogger(__name__)

# The overlay must be on screen before video starts, and the transcript must
# be running before anything is typed.
START_ORDER = (
    ProcessKind.OVERLAY,
    ProcessKind.TERMINAL_RECORDER,
    ProcessKind.VIDEO_CAPTURE,
)
STOP_ORDER = tuple(reversed(START_ORDER))

STOP_SIGNALS = {
    ProcessKind.OVERLAY: signal.SIGTERM,
    ProcessKind.TERMINAL_RECORDER: signal.SIGHUP,
    # ffmpeg only finalises its container on an interrupt.
    ProcessKind.VIDEO_CAPTURE: signal.SIGINT,
}


def overlay_command(geometry: Geometry, settings: SessionSettings) -> list[str]:
    return ["screenkey", "--no-systray", "-g", geometry.as_screenkey(), *settings.overlay_args]


def video_command(
    geometry: Geometry, path: Path, settings: SessionSettings, overwrite: bool
) -> list[str]:
    return [
        "ffmpeg",
        "-hide_banner",
        "-loglevel",
        "error",
        "-y" if overwrite else "-n",
        "-f",
        "x11grab",
        "-framerate",
        str(settings.framerate),
        "-video_size",
        f"{geometry.width}x{geometry.height}",
        "-i",
        f"{settings.display}+{geometry.x},{geometry.y}",
        *settings.video_codec_args,
        str(path),
    ]


def transcript_command(path: Path, settings: SessionSettings, overwrite: bool) -> list[str]:
    argv = ["asciinema", "rec", "--quiet"]
    if overwrite:
        argv.append("--overwrite")
    return [*argv, "--command", settings.shell, str(path)]


class ProcessLifecycleManager:
    """Owns the overlay, terminal recorder and video capture processes."""

    def __init__(
        self,
        ports: Mapping[ProcessKind, ProcessRunner],
        settings: SessionSettings,
        handles: Optional[dict[ProcessKind, ProcessHandle]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.ports = dict(ports)
        self.settings = settings
        self.handles = handles if handles is not None else new_process_handles()
        self._sleep = sleep

    def start(
        self,
        kind: ProcessKind,
        argv: Sequence[str],
        window: Optional[WindowHandle] = None,
    ) -> ProcessHandle:
        handle = self.handles[kind]
        port = self.ports[kind]
        logger.info("Starting %s: %s", kind.value, shlex.join(argv))
        try:
            pid = port.spawn(argv, window)
        except PortError as exc:
            raise ProcessStartFailed(kind, str(exc)) from exc
        handle.mark_running(pid)

        if kind is ProcessKind.OVERLAY:
            self._sleep(self.settings.overlay_settle)
        if not port.is_alive(pid):
            # Left RUNNING so that stop() reaps it.
            raise ProcessStartFailed(kind, f"{argv[0]} (pid {pid}) exited during startup")
        return handle

    def start_all(
        self,
        commands: Mapping[ProcessKind, Sequence[str]],
        window: Optional[WindowHandle] = None,
    ) -> None:
        """Start every process in order, stopping the started ones on failure."""
        for kind in START_ORDER:
            try:
                self.start(kind, commands[kind], window)
            except ProcessStartFailed:
                logger.error("Could not start %s; stopping the others.", kind.value)
                self.stop_all()
                raise

    def stop(self, handle: ProcessHandle) -> None:
        pid = handle.pid
        if not handle.running or pid is None:
            return
        logger.info("Stopping %s (pid %d)", handle.kind.value, pid)
        try:
            self.ports[handle.kind].terminate(pid, STOP_SIGNALS[handle.kind], self.settings.stop_timeout)
        finally:
            handle.mark_stopped()
        self._sleep(self.settings.stop_settle)

    def stop_all(self) -> None:
        """Stop whatever is running, newest first.

        Failures are logged and the remaining processes are still stopped. An
        abort that arrives part way through is re-raised once all are done.
        """
        aborted: Optional[OperatorAborted] = None
        for kind in STOP_ORDER:
            handle = self.handles[kind]
            try:
                self.stop(handle)
            except OperatorAborted as exc:
                aborted = exc
            except Exception:
                logger.exception("Failed to stop %s (pid %s) cleanly.", kind.value, handle.pid)
        if aborted is not None:
            raise aborted

    def all_live(self) -> bool:
        return not self.dead()

    def dead(self) -> list[ProcessKind]:
        return [
            kind
            for kind, handle in self.handles.items()
            if not (handle.running and self.ports[kind].is_alive(handle.pid))
        ]
