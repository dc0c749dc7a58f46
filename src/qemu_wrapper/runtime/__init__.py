"""Runtime module for child process management.

This module provides the child spawn, its stdout pipe reader and reliable
termination of the child's process group.
"""

from __future__ import annotations

from .process_runner import ProcessRunner, ProcessSpec

__all__ = [
    "ProcessRunner",
    "ProcessSpec",
]
