import asyncio
import logging

from celery import Celery
from celery.signals import setup_logging as celery_setup_logging

from settlement.core.config import settings
from settlement.core.logging_config import setup_logging

_loop = None


def worker_loop() -> asyncio.AbstractEventLoop:
    """Return a shared event loop for all Celery worker tasks.

    All async tasks must use the same loop to avoid 'Future attached to
    a different loop' errors caused by the shared asyncpg connection pool.
    """
    global _loop
    if _loop is None or _loop.is_closed():
        _loop = asyncio.new_event_loop()
    return _loop


celery_app = Celery(
    "settlement_worker",
    broker=settings.redis_url,
    backend=settings.redis_url,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    beat_schedule={
        "expire-overdue-payments": {
            "task": "expire_overdue_payments",
            "schedule": settings.expire_sweep_interval_seconds,
        },
    },
)


@celery_setup_logging.connect
def _configure_logging(**kwargs) -> None:
    """Replace Celery's log setup with the JSON formatter."""
    setup_logging(logging.DEBUG if settings.debug else logging.INFO)


# Import tasks so they are registered with the celery app
import settlement.workers.payment_timeouts  # noqa: F401, E402
