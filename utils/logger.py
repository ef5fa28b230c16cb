"""
utils/logger.py
---------------
Logging for the student records manager.

Every module logs through `get_logger(__name__)`, which hangs its logger
under the single ``student_records`` namespace. Only that namespace is
configured, so the host application's root logger is left alone.
Records go to stderr, keeping stdout free for CLI output.

    LOGGING_ENABLED=false   silences the namespace entirely
    LOG_LEVEL=DEBUG         lowers the threshold (default INFO)
"""

import logging
import sys

from config import LOG_LEVEL, LOGGING_ENABLED

NAMESPACE = "student_records"

_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_handler: logging.Handler | None = None


def configure_logging(enabled: bool = LOGGING_ENABLED, level: str = LOG_LEVEL) -> logging.Logger:
    """
    (Re)configure the namespace logger. Safe to call repeatedly: the
    previously installed handler is swapped out, never stacked.
    """
    global _handler
    base = logging.getLogger(NAMESPACE)
    if _handler is not None:
        base.removeHandler(_handler)

    if enabled:
        _handler = logging.StreamHandler(sys.stderr)
        _handler.setFormatter(logging.Formatter(_LOG_FORMAT, _DATE_FORMAT))
        threshold = logging.getLevelName(level.upper())
        # unknown names come back as "Level X" strings
        base.setLevel(threshold if isinstance(threshold, int) else logging.INFO)
    else:
        _handler = logging.NullHandler()
        base.setLevel(logging.CRITICAL + 1)

    base.addHandler(_handler)
    base.propagate = False
    return base


def get_logger(name: str) -> logging.Logger:
    """Named child of the ``student_records`` logger, configuring it on first use."""
    if _handler is None:
        configure_logging()
    return logging.getLogger(f"{NAMESPACE}.{name}")
