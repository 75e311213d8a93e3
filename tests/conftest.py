"""Recording fakes for every capability port.

All fakes append to one shared ``events`` list so tests can assert on the
interleaving of focus changes, keystrokes and process control.
"""

import signal
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from screencast.config import SessionSettings
from screencast.dispatcher import InputDispatcher
from screencast.errors import PortError
from screencast.models import Geometry, ProcessKind, SessionOutputs, WindowHandle
from screencast.resolver import TargetResolver
from screencast.session import SessionController

TARGET = WindowHandle("111")
SCRIPT_WINDOW = WindowHandle("222")


class FakeWindows:
    def __init__(self, events):
        self.events = events
        self.active_window = SCRIPT_WINDOW
        self.selected = TARGET
        self.geometry = Geometry(10, 20, 800, 600)
        self.missing = set()

    def active(self):
        self.events.append(("active",))
        return self.active_window

    def select(self):
        self.events.append(("select",))
        # Picking a window moves focus to it.
        self.active_window = self.selected
        return self.selected

    def focus(self, window, sync=True):
        self.events.append(("focus", window))

    def measure(self, window):
        self.events.append(("measure", window))
        if window in self.missing:
            raise PortError(f"BadWindow {window}")
        return self.geometry


class FakeInput:
    def __init__(self, events):
        self.events = events
        self.fail_on = set()

    def type_text(self, text):
        if "type" in self.fail_on:
            raise PortError("xdotool type failed")
        self.events.append(("type", text))

    def send_key(self, name):
        self.events.append(("key", name))

    def send_chord(self, names, hold):
        self.events.append(("chord", tuple(names)))

    def release(self, names):
        self.events.append(("release", tuple(names)))

    def sleep(self, seconds):
        self.events.append(("sleep", seconds))


class FakeOperator:
    def __init__(self, events):
        self.events = events
        self.abort = False

    def await_acknowledgment(self, prompt):
        self.events.append(("ack", prompt))
        if self.abort:
            raise KeyboardInterrupt


class FakeRunner:
    """Hands out pids and remembers which are alive."""

    def __init__(self, events):
        self.events = events
        self.next_pid = 100
        self.alive = set()
        self.fail_spawn = set()
        self.die_on_spawn = set()

    def spawn(self, argv, window=None):
        program = argv[0]
        if program in self.fail_spawn:
            raise PortError(f"cannot execute {program}")
        self.next_pid += 1
        pid = self.next_pid
        self.events.append(("spawn", program, pid))
        if program not in self.die_on_spawn:
            self.alive.add(pid)
        return pid

    def terminate(self, pid, sig=signal.SIGTERM, timeout=5.0):
        self.events.append(("terminate", pid, sig))
        self.alive.discard(pid)

    def is_alive(self, pid):
        return pid in self.alive


@pytest.fixture
def events():
    return []


@pytest.fixture
def settings():
    return SessionSettings(display=":99", shell="/bin/sh")


@pytest.fixture
def windows(events):
    return FakeWindows(events)


@pytest.fixture
def injector(events):
    return FakeInput(events)


@pytest.fixture
def operator(events):
    return FakeOperator(events)


@pytest.fixture
def runner(events):
    return FakeRunner(events)


@pytest.fixture
def process_ports(runner):
    return {kind: runner for kind in ProcessKind}


@pytest.fixture
def dispatcher(windows, injector, operator, settings):
    return InputDispatcher(windows, injector, operator, settings)


@pytest.fixture
def outputs(tmp_path):
    return SessionOutputs(video=tmp_path / "demo.mkv", transcript=tmp_path / "demo.cast")


@pytest.fixture
def controller(windows, dispatcher, process_ports, injector, settings, events):
    return SessionController(
        resolver=TargetResolver(windows),
        dispatcher=dispatcher,
        process_ports=process_ports,
        injector=injector,
        settings=settings,
        sleep=lambda seconds: events.append(("settle", seconds)),
    )
