"""Entry point for python -m applytrack execution.

This module allows running applytrack as a module:
    python -m applytrack sync status
    python -m applytrack --help
"""

from applytrack.cli import run

if __name__ == "__main__":
    run()
