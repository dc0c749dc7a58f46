"""qemu-wrapper - run an emulator test payload and report pass/fail/timeout.

Usage:
    qemu-wrapper -S -F -T 300 -- qemu-system-x86_64 -nographic -kernel bzImage

Each line the child prints is forwarded as "<elapsed seconds> <line>" and the
exit status reflects the first marker seen ("TEST SUCCESS", "TEST FAILED",
"Kernel panic"), the end of output, or the timeout.
"""

__version__ = "0.1.0"

from .app import main

__all__ = ["__version__", "main"]
