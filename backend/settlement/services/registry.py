"""Escrow registry, the only writer of EscrowPayment rows."""

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from settlement.core.errors import AlreadyExists, InvalidState, NotFound
from settlement.models.escrow_payment import EscrowPayment
from settlement.services.payment_state_machine import TERMINAL_STATUSES, PaymentStatus

logger = logging.getLogger(__name__)


class EscrowRegistry:
    """Stores payments keyed by their caller-supplied id.

    Methods take the caller's session so that registry writes share the
    transaction (and the rollback boundary) of the surrounding transition.
    """

    async def get(
        self, db: AsyncSession, payment_id: str, *, for_update: bool = False,
    ) -> EscrowPayment | None:
        stmt = select(EscrowPayment).where(EscrowPayment.payment_id == payment_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    async def require(
        self, db: AsyncSession, payment_id: str, *, for_update: bool = False,
    ) -> EscrowPayment:
        payment = await self.get(db, payment_id, for_update=for_update)
        if payment is None:
            raise NotFound("Payment not found", payment_id=payment_id)
        return payment

    async def insert(self, db: AsyncSession, payment: EscrowPayment) -> EscrowPayment:
        """Insert a new record; an existing id is never overwritten."""
        if await self.get(db, payment.payment_id) is not None:
            raise AlreadyExists("Payment id already in use", payment_id=payment.payment_id)
        db.add(payment)
        try:
            await db.flush()
        except IntegrityError as exc:
            # Lost a race with another process inserting the same id
            raise AlreadyExists(
                "Payment id already in use", payment_id=payment.payment_id,
            ) from exc
        return payment

    def advance(
        self, payment: EscrowPayment, new_status: PaymentStatus, height: int,
    ) -> str:
        """Move a loaded record to its next status; returns the old status."""
        old_status = payment.status
        if PaymentStatus(old_status) in TERMINAL_STATUSES:
            raise InvalidState(
                f"Payment is final ({old_status})",
                payment_id=payment.payment_id, current=old_status,
            )
        payment.status = new_status.value
        if new_status in TERMINAL_STATUSES:
            payment.completed_height = height
        return old_status

    async def list_purchases(self, db: AsyncSession, buyer: str) -> list[str]:
        result = await db.execute(
            select(EscrowPayment.payment_id)
            .where(EscrowPayment.buyer == buyer)
            .order_by(EscrowPayment.id)
        )
        return list(result.scalars().all())

    async def list_sales(self, db: AsyncSession, seller: str) -> list[str]:
        result = await db.execute(
            select(EscrowPayment.payment_id)
            .where(EscrowPayment.seller == seller)
            .order_by(EscrowPayment.id)
        )
        return list(result.scalars().all())

    async def scan_overdue(
        self,
        db: AsyncSession,
        cutoff_height: int,
        *,
        after: str | None = None,
        limit: int = 100,
    ) -> list[str]:
        """Page through PENDING payments created at or before ``cutoff_height``.

        Ordered by payment_id; pass the last id seen as ``after`` to resume.
        """
        stmt = select(EscrowPayment.payment_id).where(
            EscrowPayment.status == PaymentStatus.PENDING.value,
            EscrowPayment.created_height <= cutoff_height,
        )
        if after is not None:
            stmt = stmt.where(EscrowPayment.payment_id > after)
        result = await db.execute(stmt.order_by(EscrowPayment.payment_id).limit(limit))
        return list(result.scalars().all())
