"""Logging configuration for Latchkey.

Provides structured logging with appropriate levels for application
code vs third-party libraries.
"""

import logging
import sys
from typing import Literal

from src.settings import get_settings

# Third-party loggers that drown out ceremony logs at INFO
NOISY_LOGGERS = [
    "alembic",
    "alembic.runtime",
    "alembic.runtime.migration",
    "httpcore",
    "httpx",
    "asyncio",
    "sqlalchemy.engine",
    "sqlalchemy.pool",
    "uvicorn.access",
    "testcontainers",
]

# Per-logger levels for noisy libraries
NOISY_LOGGER_LEVELS = {
    "sqlalchemy.engine": logging.ERROR,
}


def suppress_noisy_loggers() -> None:
    """Suppress noisy third-party loggers.

    Call this after importing libraries that configure their own logging.
    """
    for logger_name in NOISY_LOGGERS:
        logger = logging.getLogger(logger_name)
        level = NOISY_LOGGER_LEVELS.get(logger_name, logging.WARNING)
        logger.setLevel(level)
        logger.handlers.clear()


def configure_logging(
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] | None = None,
) -> None:
    """Configure application logging.

    Application loggers run at the configured level; third-party
    loggers are held at WARNING and above.

    Args:
        level: Override log level (defaults to settings.log_level)
    """
    settings = get_settings()
    log_level = level or settings.log_level

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)  # Capture all, filter at handler level
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(getattr(logging, log_level))
    console_handler.setFormatter(
        logging.Formatter(
            "%(asctime)s %(levelname)s | %(name)s | %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    root_logger.addHandler(console_handler)

    logging.getLogger("src").setLevel(getattr(logging, log_level))

    suppress_noisy_loggers()

