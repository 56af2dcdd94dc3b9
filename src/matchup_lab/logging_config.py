"""Logging configuration for matchup-lab.

Configures the root logger to output to the terminal (stdout) and, unless
disabled, to append to a log file.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional

LOG_FILENAME = "matchup_lab.log"

_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"


def setup_logging(
    nolog: bool = False,
    onlyinfo: bool = False,
    log_dir: Optional[Path] = None,
) -> logging.Logger:
    """Configure the root logger.

    Args:
        nolog: If True, don't append to the log file.
        onlyinfo: If True, hide DEBUG messages (per-step battle traces).
        log_dir: Directory holding the log file; required unless nolog is set.

    Returns:
        The configured root logger.
    """
    logger = logging.getLogger()
    level = logging.INFO if onlyinfo else logging.DEBUG
    logger.setLevel(level)

    if logger.hasHandlers():
        logger.handlers.clear()

    formatter = logging.Formatter(_FORMAT, datefmt=_DATEFMT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if not nolog:
        if log_dir is None:
            raise ValueError("log_dir is required unless nolog is set")
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_dir / LOG_FILENAME, mode="a", encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger
