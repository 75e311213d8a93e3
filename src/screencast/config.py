"""Configuration models and helpers for a recording session."""

from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(slots=True)
class SessionSettings:
    """Runtime configuration for the orchestrator and its external tools."""

    display: str = ":0"
    shell: str = "/bin/bash"
    framerate: int = 30
    video_codec_args: tuple[str, ...] = ("-c:v", "libx264", "-preset", "ultrafast", "-crf", "0")
    overlay_args: tuple[str, ...] = ()
    # screenkey toggles its visibility when both Control keys are held.
    toggle_chord: tuple[str, ...] = ("Control_L", "Control_R")
    toggle_hold: float = 0.1
    toggle_settle: float = 0.5
    overlay_settle: float = 1.0
    stop_settle: float = 0.5
    stop_timeout: float = 5.0
    spawn_timeout: float = 10.0
    type_delay_ms: int = 40

    @classmethod
    def from_options(
        cls,
        display: str | None = None,
        shell: str | None = None,
        framerate: int | None = None,
        type_delay_ms: int | None = None,
    ) -> "SessionSettings":
        defaults = cls()
        return cls(
            display=display or os.environ.get("DISPLAY") or defaults.display,
            shell=shell or os.environ.get("SHELL") or defaults.shell,
            framerate=framerate if framerate is not None else defaults.framerate,
            type_delay_ms=(
                type_delay_ms if type_delay_ms is not None else defaults.type_delay_ms
            ),
        )
