"""Logging setup for command-line and desktop entry points."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"


def setup_logging(level: str = "INFO", log_file: Optional[Path] = None) -> logging.Logger:
    """Configure the ``stockledger`` logger hierarchy.

    Calling it again replaces the handlers installed by a previous call.

    Args:
        level: Logging level name
        log_file: Optional file to append log records to

    Returns:
        The package root logger
    """
    log = logging.getLogger("stockledger")
    log.setLevel(getattr(logging, level.upper(), logging.INFO))
    for handler in list(log.handlers):
        log.removeHandler(handler)
        handler.close()

    fmt = logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(fmt)
    log.addHandler(console)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(fmt)
        log.addHandler(file_handler)

    log.propagate = False
    return log
