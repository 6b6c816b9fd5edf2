#!/usr/bin/env python3
"""
SchedPool CLI entry point.

Allows running: python -m schedpool <command file>
"""

from schedpool.cli import main

if __name__ == "__main__":
    main()
