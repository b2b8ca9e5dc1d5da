"""Logging configuration for the proxy."""

import logging
import sys

LOGGER_NAME = "cohere-proxy"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level: str = "INFO") -> logging.Logger:
    """Set up the proxy logger with a stdout handler.

    Safe to call repeatedly; existing handlers are replaced rather than
    stacked.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)

    # Clear any existing handlers
    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
    logger.addHandler(console_handler)

    # Propagate so uvicorn / pytest capture see the records too
    logger.propagate = True

    return logger


# Global logger instance
logger = logging.getLogger(LOGGER_NAME)
