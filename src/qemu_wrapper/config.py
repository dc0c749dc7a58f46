"""Command-line options and logging setup.

Usage:
    qemu-wrapper [OPTIONS] -- <qemu-command> [args...]

Options:
    -S              Exit on success ("TEST SUCCESS")
    -F              Exit on failure ("TEST FAILED" or "Kernel panic")
    -T TIMEOUT      Timeout after TIMEOUT seconds
    -G SECONDS      Keep reading output for SECONDS after a kernel panic
    -v              Debug diagnostics on stderr
    -h              Display help and exit

All configuration comes from the command line; there are no environment
variables or config files.
"""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Sequence
from dataclasses import dataclass
from typing import NoReturn

from .errors import UsageError

__all__ = [
    "Options",
    "USAGE",
    "DEFAULT_PANIC_GRACE",
    "parse_args",
    "configure_logging",
]

DEFAULT_PANIC_GRACE = 2.0

USAGE = """\
qemu-wrapper - wrapper for qemu to catch test success/failure
Usage: qemu-wrapper [OPTIONS] -- <qemu-command>

Options
      -S              Exit on success
      -F              Exit on failure
      -T TIMEOUT      Timeout after TIMEOUT seconds
      -G SECONDS      Keep reading SECONDS after a kernel panic (default 2)
      -v              Verbose diagnostics on stderr
      -h              Display this help and exit
"""

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


@dataclass(frozen=True)
class Options:
    """Parsed wrapper options.

    Attributes:
        command: Child argv (first element is the executable)
        exit_on_success: Stop with SUCCESS on "TEST SUCCESS"
        exit_on_failure: Stop with FAILURE on "TEST FAILED" / "Kernel panic"
        timeout: Watchdog deadline in seconds (None = wait forever)
        panic_grace: Seconds of output still forwarded after a panic marker
        verbose: Debug-level logging
    """

    command: tuple[str, ...]
    exit_on_success: bool = False
    exit_on_failure: bool = False
    timeout: float | None = None
    panic_grace: float = DEFAULT_PANIC_GRACE
    verbose: bool = False

    def __repr__(self) -> str:
        return (
            f"Options(command={' '.join(self.command)!r}, "
            f"exit_on_success={self.exit_on_success}, "
            f"exit_on_failure={self.exit_on_failure}, "
            f"timeout={self.timeout}, "
            f"panic_grace={self.panic_grace})"
        )


class _ArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that raises UsageError instead of exiting."""

    def error(self, message: str) -> NoReturn:
        raise UsageError(message)


def _parse_seconds(value: str) -> float:
    """Parse a non-negative number of seconds."""
    try:
        seconds = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid number of seconds: {value!r}")
    if seconds < 0 or seconds != seconds:
        raise argparse.ArgumentTypeError(f"invalid number of seconds: {value!r}")
    return seconds


def _build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(prog="qemu-wrapper", usage=USAGE, add_help=False)
    parser.add_argument("-S", dest="exit_on_success", action="store_true")
    parser.add_argument("-F", dest="exit_on_failure", action="store_true")
    parser.add_argument("-T", dest="timeout", type=_parse_seconds, default=None)
    parser.add_argument(
        "-G", dest="panic_grace", type=_parse_seconds, default=DEFAULT_PANIC_GRACE
    )
    parser.add_argument("-v", dest="verbose", action="store_true")
    parser.add_argument("-h", dest="help", action="store_true")
    parser.add_argument("command", nargs=argparse.REMAINDER)
    return parser


def parse_args(argv: Sequence[str] | None = None) -> Options | None:
    """Parse the wrapper command line.

    Args:
        argv: Arguments without the program name (default: sys.argv[1:])

    Returns:
        Options, or None when -h was given (caller prints USAGE and exits 0)

    Raises:
        UsageError: Unknown option, malformed number or missing command
    """
    args = _build_parser().parse_args(sys.argv[1:] if argv is None else list(argv))

    if args.help:
        return None

    command = list(args.command)
    # Older argparse keeps the separator in REMAINDER values
    if command and command[0] == "--":
        command = command[1:]
    if not command:
        raise UsageError("missing command to run")

    return Options(
        command=tuple(command),
        exit_on_success=args.exit_on_success,
        exit_on_failure=args.exit_on_failure,
        timeout=args.timeout,
        panic_grace=args.panic_grace,
        verbose=args.verbose,
    )


def configure_logging(verbose: bool = False) -> None:
    """Send diagnostics to stderr, keeping stdout for annotated output."""
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    # Root logger (third-party libraries) stays at WARNING
    logging.basicConfig(level=logging.WARNING, handlers=[handler])
    logging.getLogger("qemu_wrapper").setLevel(
        logging.DEBUG if verbose else logging.WARNING
    )
