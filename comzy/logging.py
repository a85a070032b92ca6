"""Logging configuration for the tunnel client."""

import logging
import sys

_RESET = "\x1b[0m"
_LEVEL_COLORS = {
    logging.DEBUG: "\x1b[90m",
    logging.INFO: "\x1b[36m",
    logging.WARNING: "\x1b[33m",
    logging.ERROR: "\x1b[31m",
    logging.CRITICAL: "\x1b[1m\x1b[31m",
}


class ColorFormatter(logging.Formatter):
    """Formatter that wraps each record in the color of its level."""

    def __init__(self, fmt: str, use_color: bool = True):
        super().__init__(fmt)
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        color = _LEVEL_COLORS.get(record.levelno)
        if not self.use_color or color is None:
            return message
        return f"{color}{message}{_RESET}"


def setup_logging(level: int | str = logging.INFO) -> None:
    """
    Configure logging for the client.

    Args:
        level: Logging level (default: INFO)
    """
    if isinstance(level, str):
        level = level.upper()

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)

    formatter = ColorFormatter("%(message)s", use_color=sys.stdout.isatty())
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # aiohttp's access and client chatter is not useful on the console
    logging.getLogger("aiohttp").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured logger instance
    """
    return logging.getLogger(name)
