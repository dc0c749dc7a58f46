"""qemu-wrapper application entry point.

Parses options, configures logging, runs the supervisor under signal
handling and exits with the outcome's status code.
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Sequence
from typing import NoReturn

import anyio

from .clock import LaunchClock
from .config import USAGE, Options, configure_logging, parse_args
from .errors import EXIT_FAILURE, UsageError, WrapperError
from .markers import Outcome
from .signal_manager import SignalManager
from .supervisor import Supervisor

__all__ = ["run_wrapper", "main"]

logger = logging.getLogger(__name__)


async def run_wrapper(options: Options, clock: LaunchClock | None = None) -> int:
    """Run the child under the supervisor and return the exit status.

    SIGINT/SIGTERM cancel the run; the child is still terminated and reaped
    and the status is 128 + signal number.

    Raises:
        LaunchError: If the child cannot be started
    """
    supervisor = Supervisor(options, clock=clock)
    outcome: Outcome | None = None

    with anyio.CancelScope() as scope:
        signals = SignalManager(scope)
        await signals.start()
        try:
            outcome = await supervisor.run()
        finally:
            await signals.stop()

    if outcome is None:
        logger.info(f"Interrupted by signal {signals.received}")
        return signals.exit_code or 1
    return outcome.exit_code


def main(argv: Sequence[str] | None = None) -> NoReturn:
    """Main entry point."""
    # Elapsed times are measured from here, before option parsing
    clock = LaunchClock()

    try:
        options = parse_args(argv)
    except UsageError as e:
        sys.stderr.write(f"qemu-wrapper: {e}\n{USAGE}")
        sys.exit(e.exit_code)

    if options is None:
        sys.stdout.write(USAGE)
        sys.exit(0)

    configure_logging(options.verbose)

    try:
        code = anyio.run(run_wrapper, options, clock)
    except WrapperError as e:
        logger.error(str(e))
        sys.exit(e.exit_code)
    except BrokenPipeError:
        # The reader of our output went away; nothing more can be forwarded
        logger.error("output closed, stopping")
        # Keep the interpreter from failing again when it flushes stdout at exit
        devnull = os.open(os.devnull, os.O_WRONLY)
        os.dup2(devnull, sys.stdout.fileno())
        sys.exit(EXIT_FAILURE)

    sys.exit(code)


if __name__ == "__main__":
    main()
