"""Centralized logging setup for the document structuring service.

Every module logs through a named stdlib logger; the root handler is
installed once by the API entry point or the CLI.
"""

import logging
import sys

_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# HTTP and imaging libraries log every request/decode at INFO.
_NOISY_LOGGERS = ("httpx", "httpcore", "openai", "PIL", "multipart")


def setup_logging(level: str = "INFO") -> None:
    """Configure the root logger once and quiet chatty third-party loggers.

    Args:
        level: Logging level string (DEBUG, INFO, WARNING, ERROR, CRITICAL).
            Unknown names fall back to INFO.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    root = logging.getLogger()

    if root.handlers:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(_LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    root.addHandler(handler)
    root.setLevel(numeric_level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))


def get_logger(name: str) -> logging.Logger:
    """Return the logger for a module, typically called with ``__name__``."""
    return logging.getLogger(name)
