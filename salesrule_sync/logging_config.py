"""Logging configuration for the synchronisation engine."""
from __future__ import annotations

import logging
from typing import Optional, Union

PACKAGE_LOGGER = "salesrule_sync"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_LEVELS = {
    "critical": logging.CRITICAL,
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}

_HANDLER: Optional[logging.Handler] = None


def parse_level(level: Union[str, int, None]) -> int:
    """Translate a textual level such as ``"debug"`` into a ``logging`` constant."""

    if isinstance(level, int):
        return level
    if not level:
        return logging.INFO
    return _LEVELS.get(str(level).strip().lower(), logging.INFO)


def get_logger() -> logging.Logger:
    """Return the package logger; silent until :func:`configure_logging` runs."""

    return logging.getLogger(PACKAGE_LOGGER)


def configure_logging(
    level: Union[str, int, None] = logging.INFO,
    handler: Optional[logging.Handler] = None,
) -> logging.Logger:
    """Attach a single formatted handler to the package logger.

    Parameters
    ----------
    level:
        Minimum level, either a ``logging`` constant or a name such as
        ``"debug"``. Unknown names fall back to ``INFO``.
    handler:
        Optional handler to install instead of the default stderr stream.
        Calling the function again replaces the previously installed handler.

    Returns
    -------
    logging.Logger
        The configured package logger.
    """

    global _HANDLER

    package_logger = get_logger()
    package_logger.setLevel(parse_level(level))

    new_handler = handler or logging.StreamHandler()
    new_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    if _HANDLER is not None and _HANDLER is not new_handler:
        package_logger.removeHandler(_HANDLER)
    if new_handler not in package_logger.handlers:
        package_logger.addHandler(new_handler)
    _HANDLER = new_handler

    package_logger.debug("Logging configured at level %s", logging.getLevelName(package_logger.level))
    return package_logger


__all__ = ["LOG_FORMAT", "PACKAGE_LOGGER", "configure_logging", "get_logger", "parse_level"]
