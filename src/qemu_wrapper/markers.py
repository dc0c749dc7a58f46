"""Marker matching policy.

Each child output line is checked against an ordered list of markers; the
first marker whose trigger occurs in the line decides the run's outcome.
Matching is case-sensitive substring containment on raw bytes.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

from .errors import EXIT_FAILURE

__all__ = [
    "Outcome",
    "Marker",
    "PatternMatcher",
    "build_markers",
    "SUCCESS_MARKER",
    "FAILURE_MARKER",
    "PANIC_MARKER",
]

SUCCESS_MARKER = b"TEST SUCCESS"
FAILURE_MARKER = b"TEST FAILED"
PANIC_MARKER = b"Kernel panic"

EXIT_TIMEOUT = 124


class Outcome(Enum):
    """Terminal decision of a run."""

    SUCCESS = "success"
    FAILURE = "failure"
    TIMEOUT = "timeout"
    STREAM_END = "stream_end"

    @property
    def exit_code(self) -> int:
        """Process exit status for this outcome; only SUCCESS maps to 0."""
        if self is Outcome.SUCCESS:
            return 0
        if self is Outcome.TIMEOUT:
            return EXIT_TIMEOUT
        return EXIT_FAILURE


@dataclass(frozen=True)
class Marker:
    """A trigger substring and the outcome it produces.

    Attributes:
        trigger: Bytes looked for in each line
        outcome: Outcome decided when the trigger is found
        grace: Keep forwarding output for the grace window before stopping
    """

    trigger: bytes
    outcome: Outcome
    grace: bool = False

    def matches(self, line: bytes) -> bool:
        return self.trigger in line


def build_markers(exit_on_success: bool, exit_on_failure: bool) -> tuple[Marker, ...]:
    """Build the ordered marker list for the enabled exit conditions.

    Success is checked before failure, and "TEST FAILED" before
    "Kernel panic", so a line carrying several triggers resolves to the
    first one in this order.
    """
    markers: list[Marker] = []
    if exit_on_success:
        markers.append(Marker(SUCCESS_MARKER, Outcome.SUCCESS))
    if exit_on_failure:
        markers.append(Marker(FAILURE_MARKER, Outcome.FAILURE))
        markers.append(Marker(PANIC_MARKER, Outcome.FAILURE, grace=True))
    return tuple(markers)


class PatternMatcher:
    """Evaluates lines against an ordered marker list."""

    def __init__(self, markers: Iterable[Marker]) -> None:
        self.markers = tuple(markers)

    def match(self, line: bytes) -> Marker | None:
        """Return the first marker found in ``line``, or None to keep reading."""
        for marker in self.markers:
            if marker.matches(line):
                return marker
        return None

    def __repr__(self) -> str:
        triggers = ", ".join(m.trigger.decode() for m in self.markers) or "none"
        return f"PatternMatcher(markers={triggers})"
