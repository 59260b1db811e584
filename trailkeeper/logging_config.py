"""Console logging for trailkeeper.

Records from the ``trailkeeper`` logger carry the request id of the audit
scope they were emitted in, so log lines line up with stored entries.
"""

from __future__ import annotations

import logging
import os

from trailkeeper.context import current_context

LOGGER_NAME = "trailkeeper"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(request_id)s]: %(message)s"


class RequestIdFilter(logging.Filter):
    """Stamp ``record.request_id`` from the current audit context."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = current_context().request_id or "-"
        return True


def _level_from(value: str | None, fallback: int) -> int:
    if not value or not value.strip():
        return fallback
    value = value.strip()
    if value.isdigit():
        return int(value)
    return logging.getLevelNamesMapping().get(value.upper(), fallback)


def configure_logging(*, debug: bool = False) -> None:
    """Send trailkeeper logs to the console.

    ``LOG_LEVEL`` takes precedence over ``debug``. SQLAlchemy statement
    logging is only switched on at DEBUG.
    """
    level = _level_from(
        os.getenv("LOG_LEVEL"), logging.DEBUG if debug else logging.INFO
    )

    logger = logging.getLogger(LOGGER_NAME)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.addFilter(RequestIdFilter())
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False

    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if level <= logging.DEBUG else logging.WARNING
    )
