"""
Logging configuration for mlekit.

Estimators log optimizer progress and sampler statistics through the
``mlekit`` logger hierarchy. Library code never prints; the CLI raises the
level with ``--verbose``.
"""

from __future__ import annotations

import logging
import sys

DEFAULT_FORMAT = "[%(levelname)s] %(name)s: %(message)s"


def setup_logger(
    name: str = "mlekit",
    level: int = logging.WARNING,
    fmt: str | None = None,
) -> logging.Logger:
    """
    Set up a logger with a stdout handler and consistent formatting.

    Parameters
    ----------
    name : str, optional
        Name of the logger. Default is "mlekit".
    level : int, optional
        Logging level. Default is WARNING.
    fmt : str, optional
        Custom format string. If None, uses ``DEFAULT_FORMAT``.

    Returns
    -------
    logging.Logger
        Configured logger instance.
    """
    logger = logging.getLogger(name)

    # Only configure if not already configured
    if not logger.handlers:
        logger.setLevel(level)

        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(level)
        handler.setFormatter(logging.Formatter(fmt or DEFAULT_FORMAT))
        logger.addHandler(handler)

        logger.propagate = False

    return logger


def get_logger(name: str = "mlekit") -> logging.Logger:
    """
    Get a logger for a module.

    Child loggers (``mlekit.estimation.mle``) reuse the handler of the
    package logger; only the package logger is configured here.
    """
    logger = logging.getLogger(name)

    if "." in name:
        parent = logging.getLogger(name.split(".")[0])
        if not parent.handlers:
            setup_logger(parent.name)
        return logger

    if not logger.handlers:
        setup_logger(name)

    return logger


def set_log_level(level: int, name: str = "mlekit") -> None:
    """Change the level of the mlekit logger and its handlers."""
    logger = logging.getLogger(name)
    logger.setLevel(level)
    for handler in logger.handlers:
        handler.setLevel(level)
