"""
Logging helpers for gitpatcher.

Only the CLI calls configure_logging; library code receives its logger
through the Context object instead of configuring anything itself.
"""

from __future__ import annotations

import logging
import sys

PACKAGE_LOGGER = "gitpatcher"

_QUIET_FORMAT = "%(name)s: %(levelname)s: %(message)s"
_VERBOSE_FORMAT = "%(levelname)s %(name)s: %(message)s"


def level_for(verbosity: int) -> int:
    """
    Map a -v count to a logging level.

    verbosity == 0 -> WARNING
    verbosity == 1 -> INFO
    verbosity >= 2 -> DEBUG
    """

    if verbosity <= 0:
        return logging.WARNING
    if verbosity == 1:
        return logging.INFO
    return logging.DEBUG


def configure_logging(verbosity: int) -> logging.Logger:
    """
    Point the package logger at stderr with a level from verbosity.

    Safe to call more than once: the handler installed by a previous call
    is replaced, so repeated CLI invocations in one process do not
    duplicate output.
    """

    logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in list(logger.handlers):
        if getattr(handler, "_gitpatcher", False):
            logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler._gitpatcher = True  # type: ignore[attr-defined]
    handler.setFormatter(logging.Formatter(_VERBOSE_FORMAT if verbosity > 0 else _QUIET_FORMAT))

    logger.addHandler(handler)
    logger.setLevel(level_for(verbosity))
    logger.propagate = False
    return logger
