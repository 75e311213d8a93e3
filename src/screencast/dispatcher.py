"""Replay directives against the target window."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .config import SessionSettings
from .errors import DirectiveDispatchError, PortError
from .models import Command, Directive, Key, Pause, Sleep, Toggle
from .ports import InputInjector, Operator, WindowSystem
from .script import describe

if TYPE_CHECKING:
    from .session import SessionContext

logger = logging.getLogger(__name__)


class InputDispatcher:
    """Executes one directive at a time, in the order it is given them."""

    def __init__(
        self,
        windows: WindowSystem,
        injector: InputInjector,
        operator: Operator,
        settings: SessionSettings,
    ) -> None:
        self.windows = windows
        self.injector = injector
        self.operator = operator
        self.settings = settings

    def dispatch(self, directive: Directive, context: "SessionContext") -> None:
        logger.info("Line %d: %s", directive.line, describe(directive))
        try:
            self._dispatch(directive, context)
        except PortError as exc:
            raise DirectiveDispatchError(directive.line, f"{describe(directive)}: {exc}") from exc

    def _dispatch(self, directive: Directive, context: "SessionContext") -> None:
        target = context.require_target()
        match directive:
            case Command(text=text):
                self.windows.focus(target, sync=True)
                self.injector.type_text(text)
                self.injector.send_key("Return")
            case Key(keys=keys):
                self.windows.focus(target, sync=True)
                # Hide the overlay so the toggle chord itself is not shown.
                self.toggle_overlay(context)
                for key in keys:
                    self.injector.send_key(key)
                self.toggle_overlay(context)
            case Sleep():
                seconds = directive.seconds
                self.windows.focus(target, sync=True)
                self.injector.sleep(seconds)
            case Pause(automatic=automatic):
                self.windows.focus(context.require_script_window(), sync=True)
                reason = "Start of block" if automatic else "Paused"
                self.operator.await_acknowledgment(
                    f"{reason} at line {directive.line}; press Enter to continue"
                )
                self.windows.focus(target, sync=True)
            case Toggle():
                self.toggle_overlay(context)
            case _:
                raise TypeError(f"Unknown directive {directive!r}")

    def toggle_overlay(self, context: "SessionContext") -> None:
        """Press and release the overlay's toggle chord.

        The overlay polls for the chord, so it is held for ``toggle_hold`` and
        followed by the longer ``toggle_settle``; a quicker tap can be missed.
        """
        self.injector.send_chord(self.settings.toggle_chord, self.settings.toggle_hold)
        self.injector.sleep(self.settings.toggle_settle)
        context.overlay_visible = not context.overlay_visible
