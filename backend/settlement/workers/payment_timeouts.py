"""Celery task refunding escrows whose timeout has elapsed.

expire_refund is open to any caller, so this sweeper is only a backstop:
it walks PENDING payments page by page and refunds the overdue ones.
"""

import logging

from settlement.core.config import settings
from settlement.services.settlement import SYSTEM_CALLER, SettlementEngine
from settlement.workers import celery_app, worker_loop

logger = logging.getLogger(__name__)

# Upper bound on pages per run so one sweep cannot monopolise the worker
MAX_PAGES_PER_RUN = 50


async def sweep_overdue_payments(
    engine: SettlementEngine,
    batch_size: int,
    max_pages: int = MAX_PAGES_PER_RUN,
) -> int:
    """Refund overdue payments, following the cursor until the scan is done."""
    total = 0
    cursor: str | None = None
    for _ in range(max_pages):
        refunded, cursor = await engine.expire_overdue(
            SYSTEM_CALLER, after=cursor, limit=batch_size,
        )
        total += len(refunded)
        if cursor is None:
            break
    else:
        logger.warning("Overdue sweep stopped after %d pages at cursor=%s", max_pages, cursor)
    logger.info("Expired %d overdue payments", total)
    return total


@celery_app.task(
    name="expire_overdue_payments", bind=True, max_retries=3, default_retry_delay=60
)
def expire_overdue_payments(self) -> int:
    """Refund every PENDING payment past the escrow timeout."""
    from settlement.services.runtime import get_engine

    try:
        return worker_loop().run_until_complete(
            sweep_overdue_payments(get_engine(), settings.expire_sweep_batch_size)
        )
    except Exception as exc:
        logger.exception("expire_overdue_payments failed")
        raise self.retry(exc=exc)
