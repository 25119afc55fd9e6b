"""Logging configuration for shelfshare.

All modules log through ``logging.getLogger(__name__)``; this module wires the
handlers and levels once at startup.
"""

import logging
from typing import Optional

LOG_FORMAT = "%(asctime)s %(name)s %(levelname)s: %(message)s"

# Third-party loggers that are noisy at INFO
_QUIET_LOGGERS = {
    "sqlalchemy.engine": "WARNING",
    "werkzeug": "WARNING",
}


def configure_logging(level: Optional[str] = None) -> None:
    """Configure logging for the application.

    Args:
        level: Log level name. Defaults to the configured ``log_level``.
    """
    if level is None:
        from .config import get_config

        level = get_config().log_level

    log_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(level=log_level, format=LOG_FORMAT)
    logging.getLogger("shelfshare").setLevel(log_level)

    for logger_name, level_name in _QUIET_LOGGERS.items():
        logging.getLogger(logger_name).setLevel(getattr(logging, level_name))


def get_logger_levels() -> dict[str, str]:
    """Get current log levels for the application loggers."""
    result = {"root": logging.getLevelName(logging.getLogger().level)}
    for logger_name in ["shelfshare", *_QUIET_LOGGERS]:
        result[logger_name] = logging.getLevelName(logging.getLogger(logger_name).level)
    return result
