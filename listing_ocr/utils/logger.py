"""Logging setup shared by the listing pipeline, API, and CLI.

Every module asks for a named logger through :func:`get_logger`; the
handler and format are installed once by :func:`setup_logging`. Image
decoding and multipart parsing log every chunk at DEBUG, so those
libraries are held at INFO even when the pipeline itself is debugged.
"""

import logging
import sys

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

CHATTY_LIBRARIES = ("PIL", "multipart", "python_multipart")


def setup_logging(level: str = "INFO") -> None:
    """Attach a stdout handler to the root logger.

    Calling this again once a handler exists leaves the configuration alone,
    so the API lifespan and the CLI can both call it safely.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
            Unknown names fall back to INFO.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    root = logging.getLogger()

    if root.handlers:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    root.addHandler(handler)
    root.setLevel(numeric_level)
    for name in CHATTY_LIBRARIES:
        logging.getLogger(name).setLevel(max(numeric_level, logging.INFO))


def get_logger(name: str) -> logging.Logger:
    """Return the logger for a pipeline module, usually called with ``__name__``."""
    return logging.getLogger(name)
