"""Pytest configuration and fixtures."""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Callable

import pytest

PROJECT_ROOT = Path(__file__).parent.parent

# Add src to the Python path for runs without an installed package
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

FAKE_EMULATOR_PATH = PROJECT_ROOT / "tests" / "fixtures" / "fake_emulator.py"


@pytest.fixture
def emulator() -> Callable[..., tuple[str, ...]]:
    """Build an argv running the fake emulator with the given steps."""

    def _build(*steps: str) -> tuple[str, ...]:
        return (sys.executable, "-u", str(FAKE_EMULATOR_PATH), *steps)

    return _build


@pytest.fixture
def pidfile(tmp_path: Path) -> Path:
    """Path the fake emulator writes its pid to."""
    return tmp_path / "child.pid"


@pytest.fixture
def pid_alive() -> Callable[[int], bool]:
    """Check whether a process with the given pid still exists."""

    def _alive(pid: int) -> bool:
        try:
            os.kill(pid, 0)
        except ProcessLookupError:
            return False
        except PermissionError:
            return True
        return True

    return _alive
