"""Coloured logging configuration for the transfer benchmark.

This module provides the package logger with coloured console output, used by
the coordinator side only. Worker processes never log; they report back through
protocol messages.
"""

from __future__ import annotations

import logging
import os
import re
from typing import ClassVar

# Characters that corrupt terminal output when a worker error message is echoed
CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")


class LogMessageFilter(logging.Filter):
    """Strip terminal control characters from messages and tracebacks."""

    def filter(self, record: logging.LogRecord) -> bool:
        """Clean the record in place.

        Returns:
            Always True, records are never dropped.
        """
        if isinstance(record.msg, str):
            record.msg = CONTROL_CHARS.sub("", record.msg)
        if record.args and isinstance(record.args, tuple):
            record.args = tuple(
                CONTROL_CHARS.sub("", arg) if isinstance(arg, str) else arg for arg in record.args
            )
        if record.exc_text:
            record.exc_text = CONTROL_CHARS.sub("", record.exc_text)
        return True


class ColoredFormatter(logging.Formatter):
    """Formatter that colours each line by log level."""

    COLORS: ClassVar[dict[str, str]] = {
        "DEBUG": "\033[90m",  # Grey
        "INFO": "\033[92m",  # Green
        "WARNING": "\033[93m",  # Yellow
        "ERROR": "\033[91m",  # Red
        "CRITICAL": "\033[95m",  # Magenta
    }
    RESET: ClassVar[str] = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        """Format the record and wrap it in the level colour.

        Returns:
            The coloured log line.
        """
        colour = self.COLORS.get(record.levelname, "")
        formatted = super().format(record)
        if colour:
            formatted = f"{colour}{formatted}{self.RESET}"
        return formatted


def resolve_level(level: str | int) -> int:
    """Turn a level name such as "debug" into its numeric value.

    Raises:
        ValueError: If a level name is not known to logging.
    """
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.strip().upper())
    if not isinstance(resolved, int):
        msg = f"Unknown log level: {level}"
        raise ValueError(msg)
    return resolved


def set_level(level: str | int) -> None:
    """Change the level of the package logger and its console handler.

    Raises:
        ValueError: If a level name is not known to logging.
    """
    level = resolve_level(level)
    logger.setLevel(level)
    console_handler.setLevel(level)


logger = logging.getLogger("transferbench")
logger.setLevel(logging.DEBUG)

console_handler = logging.StreamHandler()
console_handler.setFormatter(ColoredFormatter("%(asctime)s - %(levelname)s - %(message)s"))
console_handler.addFilter(LogMessageFilter())

logger.addHandler(console_handler)

# Prevent duplicate logs from root logger
logger.propagate = False


def console_level_from_env() -> int:
    """Console level named by LOG_LEVEL, or INFO if the name is unknown."""
    name = os.getenv("LOG_LEVEL", "INFO")
    try:
        return resolve_level(name)
    except ValueError:
        logger.warning("⚠️ Unknown LOG_LEVEL %r, using INFO", name)
        return logging.INFO


console_handler.setLevel(console_level_from_env())
