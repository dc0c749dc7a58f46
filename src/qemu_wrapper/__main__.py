"""qemu-wrapper entry point.

Supports: python -m qemu_wrapper
"""

from .app import main

if __name__ == "__main__":
    main()
