"""
Logging configuration for the command line entry point.

Library modules only create loggers with ``logging.getLogger(__name__)``;
handlers are installed here, once, by the CLI.
"""

import os
import logging
from datetime import date
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler


PACKAGE_LOGGER = "jsonscanner"

FILE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
PLAIN_FORMAT = "[%(levelname)s] %(message)s"


def log_file_name(day: Optional[date] = None) -> str:
    """Dated log file name, ``app-YYYY-MM-DD.log``."""
    day = day or date.today()
    return f"app-{day.isoformat()}.log"


def configure_logging(
    level: str = "info",
    log_file: Optional[str] = None,
    color: bool = True,
) -> logging.Logger:
    """
    Install console and optional file handlers on the package logger.

    Args:
        level: One of debug, info, warning, error.
        log_file: A log file path, or a directory to hold dated log files.
        color: Use rich's console handler; otherwise plain stderr output.

    Returns:
        The configured package logger.
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    if color:
        console_handler: logging.Handler = RichHandler(
            console=Console(stderr=True),
            show_path=False,
            rich_tracebacks=True,
        )
        console_handler.setFormatter(logging.Formatter("%(message)s"))
    else:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(logging.Formatter(PLAIN_FORMAT))
    logger.addHandler(console_handler)

    if log_file:
        if os.path.isdir(log_file) or log_file.endswith(os.sep):
            os.makedirs(log_file, exist_ok=True)
            log_file = os.path.join(log_file, log_file_name())
        else:
            os.makedirs(os.path.dirname(log_file) or ".", exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        logger.addHandler(file_handler)

    logger.propagate = False
    return logger
