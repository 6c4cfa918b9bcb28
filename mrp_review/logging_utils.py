from __future__ import annotations

import logging
import os

LOGGER_NAME = "mrp_review"
LOG_FORMAT = "%(asctime)s | %(levelname)s | %(message)s"


def setup_logging(level: str = "INFO", log_file: str | None = None) -> logging.Logger:
    """
    Configure the package logger for command-line use.

    Records go to stderr at ``level``; when ``log_file`` is given, a UTF-8 file
    handler also captures everything down to DEBUG.
    """

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)
    logger.handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT)

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(getattr(logging, level.upper(), logging.INFO))
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    if log_file:
        directory = os.path.dirname(log_file)
        if directory:
            os.makedirs(directory, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.propagate = False
    logger.debug("Logging initialized at %s", level.upper())
    return logger
