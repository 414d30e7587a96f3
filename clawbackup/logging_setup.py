"""Logging setup shared by the setup wizard and backup runs."""

import logging
import sys
from pathlib import Path
from typing import Optional

LOGGER_NAME = "clawbackup"
LOG_FORMAT = "%(asctime)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(
    log_file: Optional[str] = None,
    log_level: int = logging.INFO,
    stream=None,
) -> logging.Logger:
    """
    Configure the package logger.

    Every line goes to the console and, when ``log_file`` is given, is
    appended to that file as well. Calling this again replaces the previous
    handlers instead of stacking them.
    """
    logger = logging.getLogger(LOGGER_NAME)
    close_logging(logger)
    logger.setLevel(log_level)
    logger.propagate = False

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler(stream or sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def close_logging(logger: Optional[logging.Logger] = None) -> None:
    """Detach and close all handlers of the package logger."""
    logger = logger or logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
