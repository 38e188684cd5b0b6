"""Screen capture frame source using mss."""

from __future__ import annotations

import logging
from typing import Any

import mss
from mss.exception import ScreenShotError

from stripsync.core.errors import SourceUnavailableError
from stripsync.core.model import Frame

LOGGER = logging.getLogger(__name__)


class ScreenFrameSource:
    """Grabs one monitor per ``read``. Monitor 0 is the first physical screen."""

    def __init__(self, monitor: int = 0) -> None:
        self.monitor = monitor
        self._sct: Any = None
        self._region: dict[str, int] | None = None

    def open(self) -> None:
        try:
            sct = mss.mss()
        except ScreenShotError as exc:
            raise SourceUnavailableError(f"Screen capture unavailable: {exc}") from exc
        self._sct = sct

        monitors = sct.monitors
        # mss.monitors[0] is the union of all screens; physical screens start at 1.
        if self.monitor + 1 >= len(monitors):
            raise SourceUnavailableError(
                f"Monitor {self.monitor} not found ({len(monitors) - 1} available)"
            )
        self._region = monitors[self.monitor + 1]
        LOGGER.info(
            "Capturing monitor %d: %dx%d",
            self.monitor,
            self._region["width"],
            self._region["height"],
        )

    def read(self) -> Frame | None:
        if self._sct is None or self._region is None:
            raise SourceUnavailableError("Screen capture is not open")
        try:
            shot = self._sct.grab(self._region)
        except ScreenShotError as exc:
            raise SourceUnavailableError(f"Screen capture failed: {exc}") from exc
        return Frame(width=shot.width, height=shot.height, data=bytes(shot.bgra), layout="BGRA")

    def close(self) -> None:
        sct, self._sct = self._sct, None
        self._region = None
        if sct is not None:
            sct.close()
