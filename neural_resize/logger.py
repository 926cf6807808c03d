"""
Logging configuration for neural-resize
"""

import logging
import logging.handlers
from typing import Optional

from neural_resize.config import get_config

config = get_config()


def setup_logger(name: str, propagate: Optional[bool] = None) -> logging.Logger:
    """
    Set up logger with file and console handlers

    Args:
        name: Logger name (usually __name__)
        propagate: Pass records on to ancestor loggers. Defaults to
            LOG_PROPAGATE; off by default because every package module
            logger carries its own handlers.

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.propagate = config.LOG_PROPAGATE if propagate is None else propagate

    # Avoid duplicate handlers
    if logger.handlers:
        return logger

    log_level = getattr(logging, config.LOG_LEVEL, logging.INFO)
    logger.setLevel(log_level)
    formatter = logging.Formatter(config.LOG_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # One rotating file per logger under LOGS_DIR
    log_file = config.LOGS_DIR / f"{name.replace('.', '_')}.log"
    file_handler = logging.handlers.RotatingFileHandler(
        log_file,
        maxBytes=10 * 1024 * 1024,
        backupCount=5,
        encoding="utf-8",
    )
    file_handler.setLevel(log_level)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    return logger

