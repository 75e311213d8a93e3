"""Top-level recording session: resolve, start capture, dispatch, tear down."""

from __future__ import annotations

import contextlib
import enum
import logging
import signal
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Iterable, Iterator, Mapping, Optional

from .config import SessionSettings
from .dispatcher import InputDispatcher
from .errors import OperatorAborted, PortError, ProcessStartFailed, ResolutionError
from .models import (
    Directive,
    Geometry,
    ProcessHandle,
    ProcessKind,
    SessionOutputs,
    WindowHandle,
    new_process_handles,
)
from .ports import InputInjector, ProcessRunner
from .processes import (
    ProcessLifecycleManager,
    overlay_command,
    transcript_command,
    video_command,
)
from .resolver import TargetResolver

logger = logging.getLogger(__name__)

_ABORT_SIGNALS = (signal.SIGTERM, signal.SIGHUP)
_TEARDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM, signal.SIGHUP)


class SessionState(enum.Enum):
    IDLE = "idle"
    RESOLVING = "resolving"
    CAPTURE_STARTING = "capture starting"
    DISPATCHING = "dispatching"
    CAPTURE_STOPPING = "capture stopping"
    DONE = "done"
    FAILED = "failed"


@dataclass(slots=True)
class SessionContext:
    """Everything a session knows; outlives the main flow so teardown can read it."""

    outputs: SessionOutputs
    autopause: bool = False
    overwrite: bool = False
    target: Optional[WindowHandle] = None
    script_window: Optional[WindowHandle] = None
    geometry: Optional[Geometry] = None
    processes: dict[ProcessKind, ProcessHandle] = field(default_factory=new_process_handles)
    overlay_visible: bool = True
    state: SessionState = SessionState.IDLE

    def require_target(self) -> WindowHandle:
        if self.target is None:
            raise ResolutionError("No target window has been resolved.")
        return self.target

    def require_script_window(self) -> WindowHandle:
        if self.script_window is None:
            raise ResolutionError("The script window is unknown.")
        return self.script_window


class SessionController:
    def __init__(
        self,
        resolver: TargetResolver,
        dispatcher: InputDispatcher,
        process_ports: Mapping[ProcessKind, ProcessRunner],
        injector: InputInjector,
        settings: SessionSettings,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.resolver = resolver
        self.dispatcher = dispatcher
        self.process_ports = process_ports
        self.injector = injector
        self.settings = settings
        self._sleep = sleep
        self.context: Optional[SessionContext] = None
        self.processes: Optional[ProcessLifecycleManager] = None

    def run(
        self,
        directives: Iterable[Directive],
        outputs: SessionOutputs,
        window: Optional[WindowHandle] = None,
        autopause: bool = False,
        overwrite: bool = False,
    ) -> SessionContext:
        """Record one session. Teardown has run by the time this returns or raises."""
        context = SessionContext(outputs=outputs, autopause=autopause, overwrite=overwrite)
        self.context = context
        processes = ProcessLifecycleManager(
            self.process_ports, self.settings, handles=context.processes, sleep=self._sleep
        )
        self.processes = processes
        try:
            with _abort_on_signals():
                self._record(context, processes, directives, window)
        except KeyboardInterrupt:
            context.state = SessionState.FAILED
            raise OperatorAborted() from None
        except BaseException:
            context.state = SessionState.FAILED
            raise
        finally:
            try:
                self.teardown()
            except BaseException:
                context.state = SessionState.FAILED
                raise
        context.state = SessionState.DONE
        logger.info("Recorded %s and %s", outputs.video, outputs.transcript)
        return context

    def _record(
        self,
        context: SessionContext,
        processes: ProcessLifecycleManager,
        directives: Iterable[Directive],
        window: Optional[WindowHandle],
    ) -> None:
        context.state = SessionState.RESOLVING
        target, context.script_window = self.resolver.resolve(window)
        context.target = target
        geometry = self.resolver.measure(target)
        context.geometry = geometry

        context.state = SessionState.CAPTURE_STARTING
        processes.start_all(self._commands(context, geometry), window=target)
        dead = processes.dead()
        if dead:
            raise ProcessStartFailed(dead[0], "exited before input began")

        context.state = SessionState.DISPATCHING
        for directive in directives:
            self.dispatcher.dispatch(directive, context)
        context.state = SessionState.CAPTURE_STOPPING

    def _commands(
        self, context: SessionContext, geometry: Geometry
    ) -> dict[ProcessKind, list[str]]:
        return {
            ProcessKind.OVERLAY: overlay_command(geometry, self.settings),
            ProcessKind.TERMINAL_RECORDER: transcript_command(
                context.outputs.transcript, self.settings, context.overwrite
            ),
            ProcessKind.VIDEO_CAPTURE: video_command(
                geometry, context.outputs.video, self.settings, context.overwrite
            ),
        }

    def teardown(self) -> None:
        """Stop capture and release the toggle chord. Safe to call repeatedly."""
        with _deferred_signals():
            try:
                if self.processes is not None:
                    self.processes.stop_all()
            finally:
                try:
                    self.injector.release(self.settings.toggle_chord)
                except PortError:
                    logger.warning("Could not release %s.", "+".join(self.settings.toggle_chord))


def _on_main_thread() -> bool:
    return threading.current_thread() is threading.main_thread()


@contextlib.contextmanager
def _abort_on_signals() -> Iterator[None]:
    """Turn SIGTERM and SIGHUP into OperatorAborted while recording."""
    if not _on_main_thread():
        yield
        return

    def _abort(signum, frame):
        raise OperatorAborted(f"received {signal.Signals(signum).name}")

    previous = {sig: signal.signal(sig, _abort) for sig in _ABORT_SIGNALS}
    try:
        yield
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


@contextlib.contextmanager
def _deferred_signals() -> Iterator[None]:
    """Keep teardown from being interrupted part way through."""
    if not _on_main_thread():
        yield
        return

    def _ignore(signum, frame):
        logger.warning("Cleanup in progress; ignoring %s.", signal.Signals(signum).name)

    previous = {sig: signal.signal(sig, _ignore) for sig in _TEARDOWN_SIGNALS}
    try:
        yield
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)
