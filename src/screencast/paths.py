"""Helpers for locating application directories and output files."""

from __future__ import annotations

from pathlib import Path

from platformdirs import PlatformDirs

from .models import SessionOutputs

APP_NAME = "screencast"
APP_AUTHOR = "screencast"


def get_data_dir() -> Path:
    """Return the base directory for persistent data."""
    dirs = PlatformDirs(appname=APP_NAME, appauthor=APP_AUTHOR)
    path = Path(dirs.user_data_path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_log_path() -> Path:
    return get_data_dir() / "screencast.log"


def default_outputs(script: Path, directory: Path | None = None) -> SessionOutputs:
    """Name the artifacts after the script, in ``directory`` or the cwd."""
    base = (directory or Path.cwd()) / Path(script).stem
    return SessionOutputs(video=base.with_suffix(".mkv"), transcript=base.with_suffix(".cast"))
