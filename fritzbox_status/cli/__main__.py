"""
CLI package main module for direct execution.

This allows the CLI to be run with: python -m fritzbox_status.cli

License: MIT
"""

import sys

from .main import main

if __name__ == "__main__":
    # Show the installed script name in --help output
    if len(sys.argv) > 0 and sys.argv[0].endswith("__main__.py"):
        sys.argv[0] = "fritzbox-status"

    sys.exit(main() or 0)
