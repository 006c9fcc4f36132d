#!/usr/bin/env python3
"""
cguard CLI entry point for `python -m cguard`.

Usage:
    python -m cguard fix src/util.c --in-place
    python -m cguard audit src/
    python -m cguard decl "char *(*fp)(int)"
"""

import sys
from cguard.cli import main

if __name__ == "__main__":
    sys.exit(main())
