#!/usr/bin/env python3
"""
decode_logging.py - Logging configuration for the decoder tools

Provides:
- stderr stream handler (configurable level)
- optional rotating file handler (always DEBUG)

The LOG_LEVEL environment variable takes precedence over the requested level.
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union

LOG_FORMAT = "[%(name)s] %(levelname)s: %(message)s"
FILE_LOG_FORMAT = "%(asctime)s %(levelname)-8s [%(name)s] %(message)s"
MAX_BYTES = 1_000_000
BACKUP_COUNT = 3

VALID_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

_configured = False


def resolve_level(requested: Optional[str] = None) -> str:
    """Pick the effective level name: LOG_LEVEL, then requested, then WARNING."""
    env_level = os.environ.get("LOG_LEVEL", "").upper()
    if env_level in VALID_LEVELS:
        return env_level
    if requested and requested.upper() in VALID_LEVELS:
        return requested.upper()
    return "WARNING"


def configure_logging(level: Optional[str] = None,
                      log_file: Optional[Union[str, Path]] = None) -> None:
    """
    Set up the root logger.

    Safe to call more than once; only the first call installs handlers.
    """
    global _configured

    if _configured:
        return

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(getattr(logging, resolve_level(level)))
    stderr_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(stderr_handler)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(path, maxBytes=MAX_BYTES, backupCount=BACKUP_COUNT)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT))
        root.addHandler(file_handler)

    _configured = True
