"""Append-only audit trail for payment transitions."""

import json
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from settlement.models.audit_log import AuditLog

logger = logging.getLogger(__name__)


def log_audit(
    db: AsyncSession,
    *,
    payment_id: str,
    action: str,
    to_status: str,
    from_status: str | None = None,
    actor: str | None = None,
    details: dict | None = None,
) -> AuditLog:
    """Stage an audit entry in the caller's transaction.

    The row is flushed and committed together with the transition it
    describes, so a rolled-back transition leaves no audit entry behind.
    """
    entry = AuditLog(
        payment_id=payment_id,
        action=action,
        actor=actor,
        from_status=from_status,
        to_status=to_status,
        details=json.dumps(details, default=str) if details else None,
    )
    db.add(entry)
    return entry


async def get_audit_trail(db: AsyncSession, payment_id: str) -> list[AuditLog]:
    result = await db.execute(
        select(AuditLog).where(AuditLog.payment_id == payment_id).order_by(AuditLog.id)
    )
    return list(result.scalars().all())
