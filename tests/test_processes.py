"""Tests for the process lifecycle manager and command builders."""

import signal
from pathlib import Path

import pytest

from screencast.errors import OperatorAborted, PortError, ProcessStartFailed
from screencast.models import Geometry, ProcessKind, ProcessState
from screencast.processes import (
    ProcessLifecycleManager,
    overlay_command,
    transcript_command,
    video_command,
)

COMMANDS = {
    ProcessKind.OVERLAY: ["screenkey"],
    ProcessKind.TERMINAL_RECORDER: ["asciinema", "rec"],
    ProcessKind.VIDEO_CAPTURE: ["ffmpeg"],
}


def spawned(events):
    return [event[1] for event in events if event[0] == "spawn"]


def terminated(events, runner_pids):
    return [runner_pids[event[1]] for event in events if event[0] == "terminate"]


class TestProcessLifecycleManager:
    @pytest.fixture
    def manager(self, process_ports, settings, events):
        return ProcessLifecycleManager(
            process_ports, settings, sleep=lambda s: events.append(("settle", s))
        )

    def pids(self, manager):
        return {handle.pid: handle.kind for handle in manager.handles.values()}

    def test_start_all_uses_fixed_order(self, manager, events):
        manager.start_all(COMMANDS, window="111")
        assert spawned(events) == ["screenkey", "asciinema", "ffmpeg"]
        assert all(h.state is ProcessState.RUNNING for h in manager.handles.values())
        assert manager.all_live()

    def test_overlay_start_is_followed_by_settle(self, manager, events, settings):
        manager.start_all(COMMANDS)
        assert events[1] == ("settle", settings.overlay_settle)
        assert [e for e in events if e[0] == "settle"] == [("settle", settings.overlay_settle)]

    def test_stop_all_reverses_start_order(self, manager, events, settings):
        manager.start_all(COMMANDS)
        pids = self.pids(manager)
        events.clear()
        manager.stop_all()
        assert terminated(events, pids) == [
            ProcessKind.VIDEO_CAPTURE,
            ProcessKind.TERMINAL_RECORDER,
            ProcessKind.OVERLAY,
        ]
        assert events.count(("settle", settings.stop_settle)) == 3
        assert all(h.state is ProcessState.STOPPED for h in manager.handles.values())

    def test_stop_signals_per_kind(self, manager, events):
        manager.start_all(COMMANDS)
        pids = self.pids(manager)
        manager.stop_all()
        sent = {pids[e[1]]: e[2] for e in events if e[0] == "terminate"}
        assert sent == {
            ProcessKind.VIDEO_CAPTURE: signal.SIGINT,
            ProcessKind.TERMINAL_RECORDER: signal.SIGHUP,
            ProcessKind.OVERLAY: signal.SIGTERM,
        }

    def test_stop_is_idempotent(self, manager, events):
        handle = manager.start(ProcessKind.VIDEO_CAPTURE, ["ffmpeg"])
        manager.stop(handle)
        manager.stop(handle)
        assert [e for e in events if e[0] == "terminate"] == [("terminate", handle.pid, signal.SIGINT)]

    def test_handles_are_not_reused(self, manager):
        handle = manager.start(ProcessKind.OVERLAY, ["screenkey"])
        manager.stop(handle)
        with pytest.raises(ValueError):
            manager.start(ProcessKind.OVERLAY, ["screenkey"])

    def test_video_failure_stops_the_others_in_reverse(self, manager, runner, events):
        runner.fail_spawn.add("ffmpeg")
        with pytest.raises(ProcessStartFailed) as excinfo:
            manager.start_all(COMMANDS)
        assert excinfo.value.kind is ProcessKind.VIDEO_CAPTURE
        assert terminated(events, self.pids(manager)) == [
            ProcessKind.TERMINAL_RECORDER,
            ProcessKind.OVERLAY,
        ]
        assert not any(h.running for h in manager.handles.values())
        assert manager.handles[ProcessKind.VIDEO_CAPTURE].state is ProcessState.NOT_STARTED

    def test_process_dying_at_startup_is_a_failure(self, manager, runner, events):
        runner.die_on_spawn.add("screenkey")
        with pytest.raises(ProcessStartFailed, match="exited during startup"):
            manager.start_all(COMMANDS)
        assert spawned(events) == ["screenkey"]
        assert manager.handles[ProcessKind.OVERLAY].state is ProcessState.STOPPED

    def test_stop_all_keeps_going_after_errors(self, manager, runner, events):
        manager.start_all(COMMANDS)

        def broken(pid, sig=signal.SIGTERM, timeout=5.0):
            events.append(("terminate", pid, sig))
            raise PortError("not permitted")

        runner.terminate = broken
        manager.stop_all()
        assert len([e for e in events if e[0] == "terminate"]) == 3
        assert not any(h.running for h in manager.handles.values())

    def test_abort_during_stop_all_is_raised_after_all_stops(self, manager, runner, events):
        manager.start_all(COMMANDS)
        original = runner.terminate

        def interrupted(pid, sig=signal.SIGTERM, timeout=5.0):
            original(pid, sig, timeout)
            if len([e for e in events if e[0] == "terminate"]) == 1:
                raise OperatorAborted("received SIGTERM")

        runner.terminate = interrupted
        with pytest.raises(OperatorAborted, match="SIGTERM"):
            manager.stop_all()
        assert terminated(events, self.pids(manager)) == [
            ProcessKind.VIDEO_CAPTURE,
            ProcessKind.TERMINAL_RECORDER,
            ProcessKind.OVERLAY,
        ]
        assert not any(h.running for h in manager.handles.values())

    def test_stop_without_pid_does_nothing(self, manager, events):
        manager.stop(manager.handles[ProcessKind.OVERLAY])
        assert events == []

    def test_dead_lists_exited_processes(self, manager, runner):
        manager.start_all(COMMANDS)
        video = manager.handles[ProcessKind.VIDEO_CAPTURE]
        runner.alive.discard(video.pid)
        assert manager.dead() == [ProcessKind.VIDEO_CAPTURE]
        assert not manager.all_live()


class TestCommands:
    GEOMETRY = Geometry(x=10, y=20, width=800, height=600)

    def test_overlay_covers_target(self, settings):
        assert overlay_command(self.GEOMETRY, settings) == [
            "screenkey",
            "--no-systray",
            "-g",
            "800x600+10+20",
        ]

    def test_video_grabs_target_rectangle(self, settings):
        argv = video_command(self.GEOMETRY, Path("out.mkv"), settings, overwrite=False)
        assert argv[0] == "ffmpeg"
        assert "-n" in argv and "-y" not in argv
        assert argv[argv.index("-video_size") + 1] == "800x600"
        assert argv[argv.index("-i") + 1] == ":99+10,20"
        assert argv[-1] == "out.mkv"

    def test_video_overwrite(self, settings):
        argv = video_command(self.GEOMETRY, Path("out.mkv"), settings, overwrite=True)
        assert "-y" in argv and "-n" not in argv

    def test_transcript_runs_configured_shell(self, settings):
        assert transcript_command(Path("out.cast"), settings, overwrite=True) == [
            "asciinema",
            "rec",
            "--quiet",
            "--overwrite",
            "--command",
            "/bin/sh",
            "out.cast",
        ]
