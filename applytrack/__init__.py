"""applytrack - offline-first job application tracker.

Provides the offline action sync engine and a CLI to inspect it.
"""

__version__ = "1.0.0"
