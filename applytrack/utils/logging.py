"""Shared logging setup for the CLI and long-running processes."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def setup_logging(
    level: int | str = logging.INFO,
    *,
    log_file: Path | str | None = None,
    mode: str = "a",
) -> logging.Logger:
    """Configure root logging with a stderr handler and an optional file handler.

    Falls back to stderr-only logging if the file can't be opened.

    Args:
        level: Logging level (name or number).
        log_file: Optional path of a log file to append to.
        mode: File open mode ("w" to overwrite, "a" to append).

    Returns:
        The ``applytrack`` package logger.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file is not None:
        log_path = Path(log_file)
        try:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(log_path, mode=mode))
        except OSError as exc:
            print(f"Warning: could not open log file {log_path}: {exc}", file=sys.stderr)

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )

    return logging.getLogger("applytrack")
