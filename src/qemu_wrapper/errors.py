"""qemu-wrapper exception classes.

Expected run outcomes (marker hit, stream end, timeout) are not errors and
never raised; these cover the fatal paths that stop the wrapper before a
decision can be made.
"""

from __future__ import annotations

__all__ = [
    "WrapperError",
    "UsageError",
    "LaunchError",
]

EXIT_FAILURE = 1
EXIT_USAGE = 2
EXIT_NOT_EXECUTABLE = 126
EXIT_NOT_FOUND = 127


class WrapperError(Exception):
    """Base error for qemu-wrapper.

    Attributes:
        exit_code: Process exit status the wrapper terminates with
    """

    exit_code: int = EXIT_FAILURE

    def __init__(self, message: str, exit_code: int | None = None) -> None:
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class UsageError(WrapperError):
    """Malformed command line."""

    exit_code = EXIT_USAGE


class LaunchError(WrapperError):
    """Child could not be started (pipe, spawn or exec failure)."""

    @classmethod
    def from_os_error(cls, what: str, exc: OSError) -> "LaunchError":
        """Build a LaunchError naming the underlying system error.

        Args:
            what: Short description of the failed step
            exc: The OSError raised by the failed call
        """
        detail = exc.strerror or str(exc)
        if isinstance(exc, FileNotFoundError):
            code = EXIT_NOT_FOUND
        elif isinstance(exc, PermissionError):
            code = EXIT_NOT_EXECUTABLE
        else:
            code = EXIT_FAILURE
        return cls(f"{what}: {detail}", exit_code=code)
