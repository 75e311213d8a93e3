"""X11 implementations of the capability ports, built on xdotool and psutil."""

from __future__ import annotations

import logging
import os
import shlex
import signal
import subprocess
import time
from pathlib import Path
from typing import Callable, Container, Optional, Sequence

import psutil
import typer

from .errors import OperatorAborted, PortError
from .models import Geometry, WindowHandle
from .ports import InputInjector, WindowSystem

logger = logging.getLogger(__name__)


def _display_env(display: str) -> dict[str, str]:
    return {**os.environ, "DISPLAY": display}


def run_xdotool(args: Sequence[str], display: str, timeout: Optional[float] = 10.0) -> str:
    try:
        completed = subprocess.run(
            ["xdotool", *args],
            check=False,
            capture_output=True,
            text=True,
            env=_display_env(display),
            timeout=timeout,
        )
    except FileNotFoundError:
        raise PortError("xdotool is not installed") from None
    except subprocess.TimeoutExpired:
        raise PortError(f"xdotool {args[0]} timed out after {timeout}s") from None
    if completed.returncode != 0:
        message = completed.stderr.strip() or f"xdotool {args[0]} exited with {completed.returncode}"
        raise PortError(message)
    return completed.stdout


def parse_geometry(output: str) -> Geometry:
    """Parse ``xdotool getwindowgeometry --shell`` output."""
    values: dict[str, str] = {}
    for line in output.splitlines():
        name, sep, value = line.partition("=")
        if sep:
            values[name.strip()] = value.strip()
    try:
        return Geometry(
            x=int(values["X"]),
            y=int(values["Y"]),
            width=int(values["WIDTH"]),
            height=int(values["HEIGHT"]),
        )
    except (KeyError, ValueError) as exc:
        raise PortError(f"unexpected geometry output: {output!r}") from exc


class XdotoolWindows:
    """Finds, focuses and measures windows."""

    def __init__(self, display: str) -> None:
        self.display = display

    def active(self) -> WindowHandle:
        return WindowHandle(run_xdotool(["getactivewindow"], self.display).strip())

    def select(self) -> WindowHandle:
        # Blocks until the operator clicks a window.
        return WindowHandle(run_xdotool(["selectwindow"], self.display, timeout=None).strip())

    def focus(self, window: WindowHandle, sync: bool = True) -> None:
        args = ["windowactivate"]
        if sync:
            args.append("--sync")
        run_xdotool([*args, window], self.display)

    def measure(self, window: WindowHandle) -> Geometry:
        return parse_geometry(run_xdotool(["getwindowgeometry", "--shell", window], self.display))


class XdotoolInput:
    """Sends synthetic keystrokes to whichever window has focus."""

    def __init__(self, display: str, type_delay_ms: int = 40) -> None:
        self.display = display
        self.type_delay_ms = type_delay_ms

    def type_text(self, text: str) -> None:
        run_xdotool(["type", "--delay", str(self.type_delay_ms), "--", text], self.display)

    def send_key(self, name: str) -> None:
        run_xdotool(["key", "--", name], self.display)

    def send_chord(self, names: Sequence[str], hold: float) -> None:
        run_xdotool(["keydown", *names], self.display)
        try:
            self.sleep(hold)
        finally:
            self.release(names)

    def release(self, names: Sequence[str]) -> None:
        run_xdotool(["keyup", *names], self.display)

    def sleep(self, seconds: float) -> None:
        time.sleep(seconds)


class SubprocessRunner:
    """Starts capture tools as detached children and stops them via psutil."""

    def __init__(self, display: str, log_path: Optional[Path] = None) -> None:
        self.display = display
        self.log_path = log_path

    def spawn(self, argv: Sequence[str], window: Optional[WindowHandle] = None) -> int:
        logger.debug("Spawning %s", shlex.join(argv))
        try:
            if self.log_path is None:
                proc = self._popen(argv, subprocess.DEVNULL)
            else:
                with self.log_path.open("a", encoding="utf-8") as handle:
                    proc = self._popen(argv, handle)
        except OSError as exc:
            raise PortError(f"cannot execute {argv[0]}: {exc}") from exc
        return proc.pid

    def _popen(self, argv: Sequence[str], output) -> subprocess.Popen:
        # A separate session keeps the terminal's Ctrl-C away from the
        # children; they are stopped only through terminate().
        return subprocess.Popen(
            list(argv),
            env=_display_env(self.display),
            stdin=subprocess.DEVNULL,
            stdout=output,
            stderr=output,
            start_new_session=True,
        )

    def terminate(self, pid: int, sig: int = signal.SIGTERM, timeout: float = 5.0) -> None:
        _terminate(pid, sig, timeout, children_first=False)

    def is_alive(self, pid: int) -> bool:
        try:
            return psutil.Process(pid).status() != psutil.STATUS_ZOMBIE
        except psutil.NoSuchProcess:
            return False


class WindowShellRunner(SubprocessRunner):
    """Runs a command inside the target terminal by typing it there.

    The terminal recorder has to own the target terminal's tty, so it cannot
    be a child of ours. Its pid is found afterwards by matching command lines.
    When ``toggle_chord`` is given the overlay is hidden while the command is
    typed, and ``clear_screen`` wipes the launch line from the terminal.
    """

    def __init__(
        self,
        windows: WindowSystem,
        injector: InputInjector,
        timeout: float = 10.0,
        poll_interval: float = 0.1,
        sleep: Callable[[float], None] = time.sleep,
        toggle_chord: Sequence[str] = (),
        toggle_hold: float = 0.1,
        toggle_settle: float = 0.5,
        clear_screen: bool = False,
    ) -> None:
        super().__init__(display="")
        self.windows = windows
        self.injector = injector
        self.timeout = timeout
        self.poll_interval = poll_interval
        self._sleep = sleep
        self.toggle_chord = tuple(toggle_chord)
        self.toggle_hold = toggle_hold
        self.toggle_settle = toggle_settle
        self.clear_screen = clear_screen

    def spawn(self, argv: Sequence[str], window: Optional[WindowHandle] = None) -> int:
        if window is None:
            raise PortError(f"{argv[0]} must be started inside a target window")
        before = set(psutil.pids())
        self.windows.focus(window, sync=True)
        self._toggle_overlay()
        try:
            self.injector.type_text(shlex.join(argv))
            self.injector.send_key("Return")
            try:
                pid = self._await_pid(argv, before)
            except BaseException:
                self._cancel(argv, window, before)
                raise
            if self.clear_screen:
                self.injector.type_text("clear")
                self.injector.send_key("Return")
        finally:
            self._toggle_overlay()
        return pid

    def _await_pid(self, argv: Sequence[str], before: Container[int]) -> int:
        deadline = time.monotonic() + self.timeout
        while True:
            pid = find_process(argv, exclude=before)
            if pid is not None:
                logger.debug("Found %s as pid %d", argv[0], pid)
                return pid
            if time.monotonic() >= deadline:
                raise PortError(f"{argv[0]} did not start within {self.timeout:g}s")
            self._sleep(self.poll_interval)

    def _cancel(self, argv: Sequence[str], window: WindowHandle, before: Container[int]) -> None:
        """Undo a launch whose pid was never handed out."""
        try:
            pid = find_process(argv, exclude=before)
            if pid is not None:
                logger.warning("Stopping %s (pid %d), which started too late.", argv[0], pid)
                self.terminate(pid)
            else:
                logger.warning("Cancelling %s in window %s.", argv[0], window)
                self.windows.focus(window, sync=True)
                self.injector.send_key("ctrl+c")
        except (PortError, psutil.Error):
            logger.exception("Could not cancel %s in window %s.", argv[0], window)

    def _toggle_overlay(self) -> None:
        if not self.toggle_chord:
            return
        self.injector.send_chord(self.toggle_chord, self.toggle_hold)
        self.injector.sleep(self.toggle_settle)

    def terminate(self, pid: int, sig: int = signal.SIGHUP, timeout: float = 5.0) -> None:
        # Hanging up the recorded shell lets the recorder finish its file.
        _terminate(pid, sig, timeout, children_first=True)


def command_matches(cmdline: Sequence[str], argv: Sequence[str]) -> bool:
    """True when ``cmdline`` runs ``argv``, possibly through an interpreter."""
    if not cmdline or not argv or len(cmdline) < len(argv):
        return False
    split = len(cmdline) - len(argv) + 1
    if list(cmdline[split:]) != list(argv[1:]):
        return False
    program = Path(argv[0]).name
    return any(Path(part).name == program for part in cmdline[:split])


def find_process(argv: Sequence[str], exclude: Container[int] = ()) -> Optional[int]:
    for proc in psutil.process_iter(["pid", "cmdline"]):
        info = proc.info
        if info["pid"] in exclude:
            continue
        if command_matches(info.get("cmdline") or [], argv):
            return info["pid"]
    return None


def _terminate(pid: int, sig: int, timeout: float, children_first: bool) -> None:
    try:
        proc = psutil.Process(pid)
        if children_first:
            children = proc.children(recursive=True)
            for child in children:
                try:
                    child.send_signal(sig)
                except psutil.NoSuchProcess:
                    continue
            if children:
                _, alive = psutil.wait_procs([proc], timeout=timeout)
                if not alive:
                    return
        proc.send_signal(sig)
        _, alive = psutil.wait_procs([proc], timeout=timeout)
        for survivor in alive:
            logger.warning("pid %d ignored signal %d; killing it.", survivor.pid, sig)
            survivor.kill()
        psutil.wait_procs(alive, timeout=timeout)
    except psutil.NoSuchProcess:
        logger.debug("pid %d already exited.", pid)
    except psutil.AccessDenied as exc:
        raise PortError(f"not permitted to signal pid {pid}") from exc


class TerminalOperator:
    """Waits for the operator to press Enter in the script's terminal."""

    def await_acknowledgment(self, prompt: str) -> None:
        try:
            typer.prompt(prompt, default="", show_default=False)
        except typer.Abort:
            raise OperatorAborted("aborted at a pause prompt") from None
