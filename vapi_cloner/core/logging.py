"""Logging helpers for the vapi_cloner package."""

import logging
from typing import Optional, Union

from rich.console import Console
from rich.logging import RichHandler

ROOT_LOGGER_NAME = "vapi_cloner"


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a logger inside the package namespace."""
    if not name or name == ROOT_LOGGER_NAME:
        return logging.getLogger(ROOT_LOGGER_NAME)
    if not name.startswith(ROOT_LOGGER_NAME + "."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)


def configure_logging(level: Union[str, int] = "INFO", console: Optional[Console] = None) -> logging.Logger:
    """Attach a single RichHandler to the package logger.

    Safe to call more than once; the handler is replaced, not duplicated.
    """
    logger = get_logger()
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    for handler in list(logger.handlers):
        if isinstance(handler, RichHandler):
            logger.removeHandler(handler)

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
        markup=False
    )
    handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))
    logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False
    return logger


def mask_secret(secret: Optional[str]) -> str:
    """Render a secret as ``***last4`` for log output."""
    if not secret:
        return "<none>"
    return "***" + secret[-4:]
