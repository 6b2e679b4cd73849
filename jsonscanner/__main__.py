"""
Entry point for running the scanner as a module.

Usage:
    python -m jsonscanner scan ./exports
    python -m jsonscanner --help
"""

import sys
from jsonscanner.cli import main

if __name__ == "__main__":
    sys.exit(main())
