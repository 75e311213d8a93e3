"""Identify the window to record and measure where it sits on screen."""

from __future__ import annotations

import logging
from typing import Optional

from .errors import GeometryUnavailable, PortError, ResolutionError
from .models import Geometry, WindowHandle
from .ports import WindowSystem

logger = logging.getLogger(__name__)


class TargetResolver:
    def __init__(self, windows: WindowSystem) -> None:
        self.windows = windows

    def resolve(
        self, explicit_window: Optional[WindowHandle] = None
    ) -> tuple[WindowHandle, WindowHandle]:
        """Return ``(target, script_window)``.

        The script window is read before any interactive pick, since clicking
        the target moves focus away from it.
        """
        try:
            script_window = self.windows.active()
            if explicit_window is not None:
                target = explicit_window
            else:
                logger.info("Click the window to record.")
                target = self.windows.select()
        except PortError as exc:
            raise ResolutionError(f"Cannot resolve the target window: {exc}") from exc
        if not target:
            raise ResolutionError("No target window was selected.")
        logger.info("Recording window %s (script runs in %s)", target, script_window)
        return target, script_window

    def measure(self, window: WindowHandle) -> Geometry:
        try:
            geometry = self.windows.measure(window)
        except PortError as exc:
            raise GeometryUnavailable(window, str(exc)) from exc
        logger.debug("Window %s geometry: %s", window, geometry)
        return geometry
