"""Logging utilities for the tool-calling engine."""

import logging
import sys

_LOGGER_NAME = "toolcall_engine"


def get_logger(name: str | None = None) -> logging.Logger:
    """Get a logger instance for the engine.

    Module names that already live under the package namespace are used as-is,
    anything else is nested below the engine's root logger.

    Args:
        name: Optional sub-logger name. If None, returns the root engine logger.

    Returns:
        The requested logger.
    """
    if not name:
        return logging.getLogger(_LOGGER_NAME)
    if name == _LOGGER_NAME or name.startswith(f"{_LOGGER_NAME}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{_LOGGER_NAME}.{name}")


def setup_logging(
    level: int = logging.INFO, format_str: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
) -> None:
    """Attach a stdout handler to the engine's root logger.

    Meant for applications and scripts; the library itself never calls it.

    Args:
        level: Logging level.
        format_str: Log format string.
    """
    logger = logging.getLogger(_LOGGER_NAME)

    # Calling twice must not duplicate output
    if any(not isinstance(h, logging.NullHandler) for h in logger.handlers):
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(format_str))
    logger.addHandler(handler)
    logger.setLevel(level)


logging.getLogger(_LOGGER_NAME).addHandler(logging.NullHandler())
