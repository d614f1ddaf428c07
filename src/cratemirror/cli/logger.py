"""Logging setup for the cratemirror command."""

from __future__ import annotations

import logging
import os
import sys

import colorlog

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")

_FORMAT = "[%(asctime)s] <%(name)s> %(levelname)s: %(message)s"
_COLOR_FORMAT = "%(log_color)s[%(asctime)s] <%(name)s> %(levelname)s:%(reset)s %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"

_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "bold_yellow",
    "ERROR": "bold_red",
    "CRITICAL": "bold_red,bg_white",
}

# Libraries that are chatty at DEBUG and INFO level.
_QUIET_LOGGERS = ("urllib3", "filelock")


def _wants_color(stream) -> bool:
    return os.getenv("NO_COLOR") is None and stream.isatty()


def _formatter(stream) -> logging.Formatter:
    if _wants_color(stream):
        return colorlog.ColoredFormatter(_COLOR_FORMAT, datefmt=_DATEFMT, log_colors=_COLORS)
    return logging.Formatter(_FORMAT, datefmt=_DATEFMT)


def configure_logging(level: str) -> None:
    """
    Log to stderr at the given level, one of LOG_LEVELS.

    Records from third-party libraries are only shown from WARNING up.
    """
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_formatter(sys.stderr))
    logging.basicConfig(handlers=[handler])
    # basicConfig leaves an already configured root logger alone.
    logging.getLogger().setLevel(level)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
