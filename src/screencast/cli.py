"""Command-line interface for the screencast recorder."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer

from .config import SessionSettings
from .errors import ScreencastError
from .models import ProcessKind, SessionOutputs, WindowHandle
from .paths import default_outputs, get_data_dir, get_log_path
from .script import describe, interpret

app = typer.Typer(help="Record scripted terminal screencasts.")

logger = logging.getLogger(__name__)


@app.callback(no_args_is_help=True)
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logs.")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        handlers=[logging.StreamHandler(), logging.FileHandler(get_log_path(), encoding="utf-8")],
    )


def _read_script(script: Path) -> str:
    try:
        return script.read_text(encoding="utf-8")
    except OSError as exc:
        raise typer.BadParameter(f"cannot read {script}: {exc}", param_hint="SCRIPT") from exc


@app.command()
def record(
    script: Path = typer.Argument(..., exists=True, dir_okay=False, help="Script document."),
    window: Optional[str] = typer.Option(
        None, "--window", "-w", help="Window id to record. Pick interactively when omitted."
    ),
    autopause: bool = typer.Option(
        False,
        "--autopause/--no-autopause",
        help="Wait for Enter at the start of every fenced block.",
    ),
    overwrite: bool = typer.Option(False, "--overwrite", help="Replace existing output files."),
    video: Optional[Path] = typer.Option(None, "--video", help="Video output file."),
    transcript: Optional[Path] = typer.Option(
        None, "--transcript", help="Terminal transcript (asciicast) output file."
    ),
    display: Optional[str] = typer.Option(None, "--display", help="X display to use."),
    framerate: Optional[int] = typer.Option(None, "--framerate", min=1, help="Capture framerate."),
) -> None:
    """Play SCRIPT into a terminal window while recording it."""
    document = _read_script(script)
    defaults = default_outputs(script)
    # The transcript path is typed into the target shell, whose cwd may differ.
    outputs = SessionOutputs(
        video=(video or defaults.video).resolve(),
        transcript=(transcript or defaults.transcript).resolve(),
    )
    existing = outputs.existing()
    if existing and not overwrite:
        names = ", ".join(str(path) for path in existing)
        raise typer.BadParameter(f"{names} already exists; pass --overwrite to replace it.")

    settings = SessionSettings.from_options(display=display, framerate=framerate)
    controller = build_controller(settings)
    try:
        controller.run(
            interpret(document, autopause=autopause),
            outputs,
            window=WindowHandle(window) if window else None,
            autopause=autopause,
            overwrite=overwrite,
        )
    except ScreencastError as exc:
        logger.error("%s: %s", script, exc)
        raise typer.Exit(code=exc.exit_code) from exc


@app.command()
def directives(
    script: Path = typer.Argument(..., exists=True, dir_okay=False, help="Script document."),
    autopause: bool = typer.Option(False, "--autopause/--no-autopause"),
) -> None:
    """List the directives SCRIPT would play, without recording."""
    for directive in interpret(_read_script(script), autopause=autopause):
        typer.echo(f"{directive.line:>4}  {describe(directive)}")


def build_controller(settings: SessionSettings):
    """Wire the X11 adapters into a session controller."""
    from .dispatcher import InputDispatcher
    from .resolver import TargetResolver
    from .session import SessionController
    from .x11 import (
        SubprocessRunner,
        TerminalOperator,
        WindowShellRunner,
        XdotoolInput,
        XdotoolWindows,
    )

    windows = XdotoolWindows(settings.display)
    injector = XdotoolInput(settings.display, settings.type_delay_ms)
    runner = SubprocessRunner(settings.display, log_path=get_data_dir() / "capture.log")
    process_ports = {
        ProcessKind.OVERLAY: runner,
        ProcessKind.TERMINAL_RECORDER: WindowShellRunner(
            windows,
            injector,
            timeout=settings.spawn_timeout,
            toggle_chord=settings.toggle_chord,
            toggle_hold=settings.toggle_hold,
            toggle_settle=settings.toggle_settle,
            clear_screen=True,
        ),
        ProcessKind.VIDEO_CAPTURE: runner,
    }
    return SessionController(
        resolver=TargetResolver(windows),
        dispatcher=InputDispatcher(windows, injector, TerminalOperator(), settings),
        process_ports=process_ports,
        injector=injector,
        settings=settings,
    )
