"""CLI entry point for canvas-history.

Allows running the tools from a checkout with ``python . {command}``.
"""

import sys

from canvas_history.cli import main

if __name__ == "__main__":
    sys.exit(main())
