"""Signal handling for the wrapper.

SIGINT and SIGTERM sent to the wrapper cancel the running supervisor instead
of killing the wrapper outright, so the child still gets terminated and
reaped by the runner's cleanup. The caller exits with 128 + signal number.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys

import anyio

__all__ = ["SignalManager"]

logger = logging.getLogger(__name__)

HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class SignalManager:
    """Turns SIGINT/SIGTERM into cancellation of a cancel scope.

    Example:
        with anyio.CancelScope() as scope:
            signals = SignalManager(scope)
            await signals.start()
            try:
                outcome = await supervisor.run()
            finally:
                await signals.stop()

        if signals.received is not None:
            sys.exit(signals.exit_code)

    Attributes:
        cancel_scope: Scope cancelled on the first handled signal
        received: Number of the first signal received, if any
    """

    def __init__(self, cancel_scope: anyio.CancelScope) -> None:
        self.cancel_scope = cancel_scope
        self.received: int | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._running = False

    @property
    def exit_code(self) -> int | None:
        """Conventional shell status for the received signal."""
        if self.received is None:
            return None
        return 128 + self.received

    async def start(self) -> None:
        """Install the handlers; must run inside the event loop."""
        if self._running:
            logger.warning("SignalManager already running")
            return

        self._loop = asyncio.get_running_loop()
        self._running = True

        if sys.platform == "win32":
            logger.debug("Signal forwarding not supported on Windows")
            return

        for sig in HANDLED_SIGNALS:
            self._loop.add_signal_handler(sig, self._handle_signal, sig)
        logger.debug("Signal handlers installed")

    async def stop(self) -> None:
        """Remove the handlers."""
        if not self._running:
            return
        self._running = False

        if sys.platform != "win32" and self._loop:
            for sig in HANDLED_SIGNALS:
                self._loop.remove_signal_handler(sig)
        logger.debug("Signal handlers removed")

    def _handle_signal(self, signum: int) -> None:
        name = signal.Signals(signum).name
        if self.received is not None:
            logger.debug(f"{name} received, shutdown already in progress")
            return

        logger.info(f"{name} received, stopping child")
        self.received = signum
        self.cancel_scope.cancel()
