"""Launch clock: elapsed whole seconds since the wrapper started."""

from __future__ import annotations

import time
from typing import Callable

__all__ = ["LaunchClock", "format_elapsed"]


def format_elapsed(seconds: int) -> bytes:
    """Render elapsed seconds as the zero-padded line prefix, e.g. b"0007 "."""
    return b"%04d " % seconds


class LaunchClock:
    """Monotonic reference captured once at construction.

    Attributes:
        start: Monotonic timestamp of launch
    """

    def __init__(self, now: Callable[[], float] = time.monotonic) -> None:
        self._now = now
        self.start = now()
        self._last = 0

    def elapsed(self) -> int:
        """Whole seconds since launch, never smaller than a previous result."""
        seconds = int(self._now() - self.start)
        # monotonic() cannot go backwards, but an injected source might
        if seconds < self._last:
            return self._last
        self._last = seconds
        return seconds
