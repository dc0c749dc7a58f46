"""Entry point tests.

Check the wrapper's exit codes through main(), and signal handling by
running ``python -m qemu_wrapper`` as a real subprocess.
"""

from __future__ import annotations

import os
import signal
import subprocess
import sys
import time
from pathlib import Path

import pytest

from qemu_wrapper.app import main, run_wrapper
from qemu_wrapper.config import Options

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="POSIX-only runner")

PROJECT_ROOT = Path(__file__).parent.parent
SRC_DIR = PROJECT_ROOT / "src"


def run_main(argv: list[str]) -> int:
    with pytest.raises(SystemExit) as exc_info:
        main(argv)
    return exc_info.value.code


def start_wrapper(args: list[str], **kwargs) -> subprocess.Popen:
    """Run ``python -m qemu_wrapper`` with its stdout on a pipe."""
    env = dict(os.environ)
    env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(SRC_DIR), env.get("PYTHONPATH")]))
    return subprocess.Popen(
        [sys.executable, "-m", "qemu_wrapper", *args],
        stdout=subprocess.PIPE,
        env=env,
        **kwargs,
    )


def wait_for_pid(path: Path) -> int:
    deadline = time.monotonic() + 10
    while time.monotonic() < deadline:
        if path.exists() and path.read_text():
            return int(path.read_text())
        time.sleep(0.05)
    raise AssertionError("child never wrote its pid")


class TestMainExitCodes:
    """Test main() exit statuses."""

    def test_help(self, capsys):
        assert run_main(["-h"]) == 0
        assert "Usage: qemu-wrapper" in capsys.readouterr().out

    def test_unknown_option(self, capsys):
        assert run_main(["-X", "--", "true"]) == 2
        err = capsys.readouterr().err
        assert "Usage: qemu-wrapper" in err

    def test_missing_command(self, capsys):
        assert run_main(["-S"]) == 2
        assert "missing command" in capsys.readouterr().err

    def test_success(self, emulator, capfd):
        assert run_main(["-S", "--", *emulator("print:booting...", "print:TEST SUCCESS")]) == 0
        out = capfd.readouterr().out
        assert " booting...\n" in out
        assert " TEST SUCCESS\n" in out

    def test_failure(self, emulator):
        assert run_main(["-F", "--", *emulator("print:TEST FAILED")]) == 1

    def test_stream_end(self, emulator):
        assert run_main(["--", *emulator("print:TEST SUCCESS")]) == 1

    def test_timeout(self, emulator):
        assert run_main(["-S", "-T", "1", "--", *emulator("sleep:100")]) == 124

    def test_command_not_found(self):
        assert run_main(["-S", "--", "/nonexistent/qemu-system-x86_64"]) == 127


class TestRunWrapper:
    """Test the async entry point."""

    @pytest.mark.asyncio
    async def test_returns_outcome_code(self, emulator, capfd):
        options = Options(command=emulator("print:TEST SUCCESS"), exit_on_success=True)
        assert await run_wrapper(options) == 0


@pytest.mark.integration
class TestSignals:
    """Test that signals to the wrapper still clean up the child."""

    @pytest.mark.parametrize("sig", [signal.SIGTERM, signal.SIGINT])
    def test_signal_kills_child(self, sig, emulator, pidfile: Path, pid_alive):
        wrapper = start_wrapper(
            ["-S", "--", *emulator("pidfile:" + str(pidfile), "print:up", "sleep:100")]
        )
        try:
            child_pid = wait_for_pid(pidfile)
            assert wrapper.stdout.readline().endswith(b" up\n")

            wrapper.send_signal(sig)
            assert wrapper.wait(timeout=10) == 128 + sig
        finally:
            if wrapper.poll() is None:
                wrapper.kill()
                wrapper.wait()
            wrapper.stdout.close()

        assert not pid_alive(child_pid)


@pytest.mark.integration
class TestClosedOutput:
    """Test that losing the reader of our output ends the run cleanly."""

    def test_closed_stdout_exits_without_traceback(self, emulator, pidfile: Path, pid_alive):
        wrapper = start_wrapper(
            [
                "-S",
                "--",
                *emulator(
                    "pidfile:" + str(pidfile),
                    "print:first",
                    "sleep:0.5",
                    "print:second",
                    "sleep:100",
                ),
            ],
            stderr=subprocess.PIPE,
        )
        try:
            child_pid = wait_for_pid(pidfile)
            assert wrapper.stdout.readline().endswith(b" first\n")
            wrapper.stdout.close()

            assert wrapper.wait(timeout=10) == 1
            err = wrapper.stderr.read()
        finally:
            if wrapper.poll() is None:
                wrapper.kill()
                wrapper.wait()
            wrapper.stderr.close()

        assert b"output closed" in err
        assert b"Traceback" not in err
        assert b"Exception ignored" not in err
        assert not pid_alive(child_pid)
