"""Process runner with an owned stdout pipe and reliable termination.

qemu-wrapper runtime module

This module provides:
- Child spawn with stdout redirected into a pipe the parent owns
- Line-by-line reading of that pipe (blocking until a full line or EOF)
- Reliable termination of the child's process group (SIGTERM -> timeout -> SIGKILL)
- Cancel-safe cleanup using a shielded anyio.CancelScope

Key design points:
- The child inherits stdin and stderr; only stdout is captured
- start_new_session=True puts the child (and anything it forks) in its own
  process group, so termination reaches helpers the emulator started
- Every exit path (EOF, early break, cancellation, error) kills, reaps and
  closes the pipe before control returns to the caller
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
from collections.abc import AsyncIterator, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import anyio

from ..errors import LaunchError

__all__ = [
    "ProcessRunner",
    "ProcessSpec",
]

logger = logging.getLogger(__name__)

# Default timeouts
DEFAULT_TERM_TIMEOUT = 2.0  # seconds to wait after SIGTERM
DEFAULT_KILL_TIMEOUT = 1.0  # seconds to wait after SIGKILL

# StreamReader buffer limit; longer lines are reassembled, not split
DEFAULT_LINE_LIMIT = 64 * 1024


@dataclass(frozen=True)
class ProcessSpec:
    """Specification for the child process.

    Attributes:
        argv: Command line arguments (first element is the executable)
        cwd: Working directory (None = inherit)
        env: Environment variables (None = inherit parent)
    """

    argv: Sequence[str]
    cwd: Path | None = None
    env: Mapping[str, str] | None = None


@dataclass
class ProcessRunner:
    """Spawns one child and streams its stdout line by line.

    Example:
        runner = ProcessRunner()
        spec = ProcessSpec(argv=["qemu-system-x86_64", "-nographic", ...])

        async with contextlib.aclosing(runner.run(spec)) as lines:
            async for line in lines:
                handle(line)

    Leaving the ``async for`` early (break, exception or cancellation)
    terminates the child; wrap the generator in ``aclosing`` so that happens
    immediately rather than when the generator is garbage collected.
    """

    term_timeout: float = DEFAULT_TERM_TIMEOUT
    kill_timeout: float = DEFAULT_KILL_TIMEOUT
    line_limit: int = DEFAULT_LINE_LIMIT
    process: asyncio.subprocess.Process | None = field(default=None, init=False)

    async def run(self, spec: ProcessSpec) -> AsyncIterator[bytes]:
        """Run the child and yield its stdout lines.

        This method:
        1. Creates a pipe and spawns the child with the write end as stdout
        2. Closes the parent's copy of the write end
        3. Yields lines (including the newline; the last one may lack it)
        4. Terminates, reaps and closes the pipe on every exit path

        Args:
            spec: Process specification

        Yields:
            Lines from the child's stdout as bytes

        Raises:
            LaunchError: If the pipe cannot be created or the child cannot start
        """
        process: asyncio.subprocess.Process | None = None
        transport: asyncio.ReadTransport | None = None

        try:
            read_fd, write_fd = os.pipe()
        except OSError as e:
            raise LaunchError.from_os_error("error creating pipe", e) from e

        try:
            try:
                process = await asyncio.create_subprocess_exec(
                    *spec.argv,
                    stdin=None,
                    stdout=write_fd,
                    stderr=None,
                    cwd=spec.cwd,
                    **self._build_subprocess_kwargs(spec),
                )
            except OSError as e:
                os.close(read_fd)
                raise LaunchError.from_os_error(f"error execing {spec.argv[0]}", e) from e
            except BaseException:
                # Cancelled while spawning: nobody will ever read this end
                os.close(read_fd)
                raise
            finally:
                # Only the child may hold the write end, so EOF means it is done
                os.close(write_fd)

            self.process = process
            logger.debug(f"Started child pid={process.pid} argv={list(spec.argv)}")

            reader, transport = await self._connect_reader(read_fd)

            while True:
                line = await self._readline(reader)
                if not line:
                    break
                yield line

            logger.debug(f"Child closed its output pid={process.pid}")

        finally:
            await self._safe_cleanup(process, transport)

    def _build_subprocess_kwargs(self, spec: ProcessSpec) -> dict[str, Any]:
        """Build extra kwargs for asyncio.create_subprocess_exec."""
        kwargs: dict[str, Any] = {"start_new_session": True}
        if spec.env is not None:
            kwargs["env"] = dict(spec.env)
        return kwargs

    async def _connect_reader(
        self, read_fd: int
    ) -> tuple[asyncio.StreamReader, asyncio.ReadTransport]:
        """Wrap the pipe read end in a StreamReader.

        The returned transport owns the descriptor; closing it closes the pipe.
        """
        pipe = open(read_fd, "rb", buffering=0)
        loop = asyncio.get_running_loop()
        reader = asyncio.StreamReader(limit=self.line_limit)
        protocol = asyncio.StreamReaderProtocol(reader)
        try:
            transport, _ = await loop.connect_read_pipe(lambda: protocol, pipe)
        except BaseException:
            pipe.close()
            raise
        return reader, transport

    async def _readline(self, reader: asyncio.StreamReader) -> bytes:
        """Read one line, or b"" at EOF.

        Waits until a newline arrives or the pipe closes. A final line
        without newline is returned as-is.
        """
        chunks: list[bytes] = []
        while True:
            try:
                chunks.append(await reader.readuntil(b"\n"))
                break
            except asyncio.IncompleteReadError as e:
                chunks.append(e.partial)
                break
            except asyncio.LimitOverrunError as e:
                # Line is longer than the buffer limit: take what is buffered
                chunks.append(await reader.readexactly(e.consumed))
        return b"".join(chunks)

    async def _safe_cleanup(
        self,
        process: asyncio.subprocess.Process | None,
        transport: asyncio.ReadTransport | None,
    ) -> None:
        """Terminate, reap and close, shielded from cancellation.

        Runs inside a shielded anyio.CancelScope so a watchdog deadline or a
        signal that cancelled the read cannot interrupt the cleanup itself.
        """
        with anyio.CancelScope(shield=True):
            if process is not None:
                if process.returncode is None:
                    await self._terminate_process(process)
                else:
                    await process.wait()
                logger.debug(
                    f"Child reaped pid={process.pid} returncode={process.returncode}"
                )

            if transport is not None and not transport.is_closing():
                transport.close()
                # Let the transport's connection_lost callback release the fd
                await asyncio.sleep(0)

    async def _terminate_process(self, process: asyncio.subprocess.Process) -> None:
        """Terminate the child gracefully, then forcefully if needed.

        Termination strategy:
        1. Send SIGTERM to the child's process group
        2. Wait up to term_timeout for it to exit
        3. If still running, send SIGKILL to the group
        4. Wait up to kill_timeout for the forced exit

        Args:
            process: The child to terminate
        """
        pid = process.pid
        logger.debug(f"Terminating child pid={pid}")

        try:
            self._signal_group(process, signal.SIGTERM)
            with anyio.move_on_after(self.term_timeout):
                await process.wait()
            if process.returncode is not None:
                logger.debug(
                    f"Child terminated gracefully pid={pid} "
                    f"returncode={process.returncode}"
                )
                return

            logger.debug(f"Force killing child pid={pid}")
            self._signal_group(process, signal.SIGKILL)
            with anyio.move_on_after(self.kill_timeout):
                await process.wait()
            if process.returncode is None:
                logger.warning(f"Child did not exit after kill pid={pid}")

        except ProcessLookupError:
            logger.debug(f"Child already exited pid={pid}")
        except OSError as e:
            logger.warning(f"Error terminating child pid={pid}: {e}")

    def _signal_group(self, process: asyncio.subprocess.Process, sig: int) -> None:
        """Send ``sig`` to the child's process group, falling back to the child."""
        try:
            # start_new_session makes the child its own group leader
            os.killpg(process.pid, sig)
            logger.debug(f"Sent {signal.Signals(sig).name} to process group pgid={process.pid}")
        except ProcessLookupError:
            pass
        except PermissionError as e:
            logger.debug(f"killpg failed, signalling child only: {e}")
            process.send_signal(sig)
