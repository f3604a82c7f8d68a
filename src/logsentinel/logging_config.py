"""Diagnostic logging for the logsentinel package."""

from __future__ import annotations

import logging
from typing import TextIO

LOGGER_NAME = "logsentinel"
LOG_FORMAT = "[logsentinel] %(levelname)s: %(message)s"

# Attribute set on the handler we own so repeated setup calls reuse it
_HANDLER_FLAG = "_logsentinel_handler"

# Attribute remembering the level we last set on the package logger
_LEVEL_ATTR = "_logsentinel_level"


def setup_logging(debug: bool = False, stream: TextIO | None = None) -> logging.Logger:
    """
    Configure the `logsentinel` logger.

    Warnings and errors always show; debug lines only when `debug` is on.
    A level the host set on the `logsentinel` logger is kept unless debug
    is on. A stream handler is attached only when the host has not
    configured the root logger, so host log pipelines do not see duplicates.

    Args:
        debug: Emit DEBUG lines (mirrors LOGSENTINEL_DEBUG)
        stream: Output stream for the handler. Defaults to stderr.

    Returns:
        The package logger
    """
    logger = logging.getLogger(LOGGER_NAME)

    host_level = logger.level not in (logging.NOTSET, getattr(logger, _LEVEL_ATTR, None))
    if debug or not host_level:
        level = logging.DEBUG if debug else logging.WARNING
        logger.setLevel(level)
        setattr(logger, _LEVEL_ATTR, level)

    if any(getattr(h, _HANDLER_FLAG, False) for h in logger.handlers):
        return logger

    if logging.getLogger().handlers and stream is None:
        return logger

    handler = logging.StreamHandler(stream)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    setattr(handler, _HANDLER_FLAG, True)
    logger.addHandler(handler)
    return logger
