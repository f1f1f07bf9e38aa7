"""
utils/logger.py
Logging wrapper for portik.

One handler on the "portik" root logger; module loggers ("portik.sockets",
"portik.history", ...) propagate to it. Output goes to stderr so JSON on
stdout stays machine readable.
"""

import logging
import sys

ROOT_LOGGER = "portik"


def get_logger(name: str = ROOT_LOGGER, level: int = logging.INFO) -> logging.Logger:
    """
    Get a configured logger instance.

    Args:
        name: Logger name, "portik" or a dotted child like "portik.sockets"
        level: Level applied when the root handler is first installed

    Returns:
        Logger instance
    """
    root = logging.getLogger(ROOT_LOGGER)

    # Avoid duplicate handlers
    if not root.handlers:
        root.setLevel(level)
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(
            '%(levelname)s - %(message)s',
            datefmt='%H:%M:%S'
        ))
        root.addHandler(handler)

    if name == ROOT_LOGGER:
        return root
    return logging.getLogger(name)


def set_level(level) -> None:
    """Change the level of the portik root logger (accepts "DEBUG" or logging.DEBUG)."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    get_logger().setLevel(level)


# Default logger instance
log = get_logger()


__all__ = ["get_logger", "set_level", "log"]
