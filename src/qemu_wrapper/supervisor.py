"""Supervisor: runs the child and decides the outcome of the run.

Data flow:
    ProcessRunner (spawn + pipe) -> lines -> timestamp + forward -> markers

The whole read/decide loop runs under an anyio deadline (the watchdog).
When it fires, the pending pipe read is cancelled and the runner's shielded
cleanup kills and reaps the child before the outcome is returned.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import aclosing
from typing import BinaryIO

import anyio

from .clock import LaunchClock, format_elapsed
from .config import Options
from .markers import Outcome, PatternMatcher, build_markers
from .runtime import ProcessRunner, ProcessSpec

__all__ = ["Supervisor"]

logger = logging.getLogger(__name__)


class Supervisor:
    """Owns the launch clock, the child runner and the run's outcome.

    Example:
        supervisor = Supervisor(options)
        outcome = await supervisor.run()
        sys.exit(outcome.exit_code)

    Attributes:
        options: Parsed wrapper options
        clock: Launch clock used for line prefixes
        runner: Child process runner
        matcher: Ordered marker policy
        output: Binary stream receiving annotated lines
    """

    def __init__(
        self,
        options: Options,
        *,
        clock: LaunchClock | None = None,
        runner: ProcessRunner | None = None,
        output: BinaryIO | None = None,
    ) -> None:
        self.options = options
        self.clock = clock if clock is not None else LaunchClock()
        self.runner = runner if runner is not None else ProcessRunner()
        self.matcher = PatternMatcher(
            build_markers(options.exit_on_success, options.exit_on_failure)
        )
        self.output = output if output is not None else sys.stdout.buffer
        # Outcome chosen by a marker, kept if the deadline cuts the grace window
        self._decided: Outcome | None = None

    async def run(self) -> Outcome:
        """Run the child to a single outcome.

        Returns:
            SUCCESS or FAILURE on a marker line, STREAM_END when the child's
            output ends without one, TIMEOUT when the deadline passes first

        Raises:
            LaunchError: If the child cannot be started
        """
        spec = ProcessSpec(argv=self.options.command)
        logger.debug(f"Supervising {self.options!r} with {self.matcher!r}")

        outcome = Outcome.TIMEOUT
        with anyio.move_on_after(self.options.timeout) as watchdog:
            async with aclosing(self.runner.run(spec)) as lines:
                outcome = await self._consume(lines)

        if watchdog.cancelled_caught:
            if self._decided is not None:
                outcome = self._decided
            else:
                logger.info(f"Timeout after {self.options.timeout}s")

        logger.debug(f"Run finished outcome={outcome.name} exit_code={outcome.exit_code}")
        return outcome

    async def _consume(self, lines: AsyncIterator[bytes]) -> Outcome:
        async for line in lines:
            self._emit(line)

            marker = self.matcher.match(line)
            if marker is None:
                continue

            logger.info(f"Marker {marker.trigger.decode()!r} -> {marker.outcome.name}")
            self._decided = marker.outcome
            if marker.grace and self.options.panic_grace > 0:
                await self._drain(lines, self.options.panic_grace)
            return marker.outcome

        return Outcome.STREAM_END

    async def _drain(self, lines: AsyncIterator[bytes], seconds: float) -> None:
        """Keep forwarding output for ``seconds`` without matching it."""
        logger.debug(f"Draining output for {seconds}s before stopping")
        with anyio.move_on_after(seconds):
            async for line in lines:
                self._emit(line)

    def _emit(self, line: bytes) -> None:
        self.output.write(format_elapsed(self.clock.elapsed()) + line)
        self.output.flush()
