"""Logging setup with per-measurement correlation.

Every measurement call runs under its own measurement id, stored in a
``ContextVar`` so that concurrent measurements on different threads keep
their log lines apart. ``MeasurementIDFilter`` stamps the id on each record.
"""

import contextvars
import logging
import sys
import uuid
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path
from typing import Final, override

measurement_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "measurement_id",
    default=None,
)

DEFAULT_LOG_FORMAT: Final[str] = "%(asctime)s - %(name)s - %(levelname)s - [%(measurement_id)s] - %(message)s"

# Library loggers live under this namespace
PACKAGE_LOGGER: Final[str] = "object_meter"


class MeasurementIDFilter(logging.Filter):
    """Logging filter that adds the current measurement id to log records."""

    @override
    def filter(self, record: logging.LogRecord) -> bool:
        """Add the measurement id from the ContextVar to ``record``.

        Args:
            record: Log record to enhance

        Returns:
            True to allow the record to be logged
        """
        measurement_id = measurement_id_var.get()
        record.measurement_id = measurement_id if measurement_id is not None else "-"
        return True


def configure_logging(
    *,
    log_level: str = "INFO",
    log_format: str = DEFAULT_LOG_FORMAT,
    log_file: Path | str | None = None,
    enable_console: bool = True,
    logger_name: str = PACKAGE_LOGGER,
) -> logging.Logger:
    """Configure handlers for the library's loggers.

    Only the ``object_meter`` logger tree is touched so that embedding
    applications keep control of the root logger.

    Args:
        log_level: Logging level name (DEBUG, INFO, WARNING, ERROR)
        log_format: Format string, may reference ``%(measurement_id)s``
        log_file: Optional file receiving the same records
        enable_console: Enable a stderr handler
        logger_name: Logger to configure

    Returns:
        The configured logger

    Example:
        >>> configure_logging(log_level="DEBUG")
        >>> measure_deep(obj)  # strategy choice and traversal summary are logged
    """
    logger = logging.getLogger(logger_name)

    level = getattr(logging, log_level.upper(), logging.INFO)
    logger.setLevel(level)

    # Remove handlers from a previous call to avoid duplicates
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    measurement_filter = MeasurementIDFilter()
    formatter = logging.Formatter(log_format)

    if enable_console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(formatter)
        console_handler.addFilter(measurement_filter)
        logger.addHandler(console_handler)

    if log_file is not None:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        file_handler.addFilter(measurement_filter)
        logger.addHandler(file_handler)

    return logger


def new_measurement_id() -> str:
    return uuid.uuid4().hex[:12]


def get_measurement_id() -> str | None:
    return measurement_id_var.get()


@contextmanager
def measurement_id_context(measurement_id: str | None = None) -> Generator[str]:
    """Run a block under a measurement id, restoring the previous one after.

    Args:
        measurement_id: Id to use, a fresh one when omitted

    Yields:
        The active measurement id
    """
    active = measurement_id or new_measurement_id()
    token = measurement_id_var.set(active)
    try:
        yield active
    finally:
        measurement_id_var.reset(token)
