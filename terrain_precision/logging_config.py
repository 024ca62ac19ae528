"""
logging_config.py — Package Logger Factory
============================================
"""

import logging
import sys


def get_logger(name: str, level: int = logging.INFO) -> logging.Logger:
    """
    Get a logger for a terrain_precision module.

    A stdout handler is attached on first use only, so repeated calls
    (module reloads, several imports) never duplicate output.

    Args:
        name:  Logger name (typically __name__)
        level: Logging level

    Returns:
        Configured logging.Logger
    """
    logger = logging.getLogger(name)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        formatter = logging.Formatter(
            '%(asctime)s | %(name)s | %(levelname)s | %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    logger.setLevel(level)
    return logger
