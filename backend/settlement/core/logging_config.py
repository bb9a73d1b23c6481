"""Structured JSON logging configuration."""

import logging
import sys

from pythonjsonlogger import jsonlogger

from settlement.core.config import settings

# Third-party loggers that are chatty at INFO
QUIET_LOGGERS = ("httpx", "sqlalchemy.engine", "celery.redirected")


def setup_logging(level: int = logging.INFO) -> None:
    """Send JSON lines to stdout, tagged with the service name.

    Extra fields passed via ``logger.info(..., extra={...})`` are emitted as
    top-level keys, so callers can attach a ``payment_id``.
    """
    handler = logging.StreamHandler(sys.stdout)
    formatter = jsonlogger.JsonFormatter(
        fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
        rename_fields={"asctime": "timestamp", "levelname": "level"},
        static_fields={"service": settings.app_name},
    )
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
