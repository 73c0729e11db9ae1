"""
Logging setup for processes embedding the time-series client
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: str = "INFO", error_log: str | None = None) -> logging.Logger:
    """
    Configure root logging

    Args:
        level: Console log level name (unknown names fall back to INFO)
        error_log: Optional path of a rotating file that receives ERROR and above

    Returns:
        The root logger
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(numeric_level)
    console.setFormatter(logging.Formatter(LOG_FORMAT))
    handlers: list[logging.Handler] = [console]

    if error_log:
        os.makedirs(os.path.dirname(error_log) or ".", exist_ok=True)
        errors = RotatingFileHandler(
            error_log,
            maxBytes=5 * 1024 * 1024,  # 5MB
            backupCount=3,
        )
        errors.setLevel(logging.ERROR)
        errors.setFormatter(logging.Formatter(LOG_FORMAT))
        handlers.append(errors)

    logging.basicConfig(level=numeric_level, handlers=handlers, force=True)
    return logging.getLogger()
