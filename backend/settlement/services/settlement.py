"""Settlement engine — escrow payment lifecycle and fund movement.

create_payment → PENDING, then one of:
  confirm_delivery  PENDING  → COMPLETED  (seller paid, treasury takes fee)
  raise_dispute     PENDING  → DISPUTED   (no funds move)
  resolve_dispute   DISPUTED → RESOLVED   (admin splits the escrow)
  expire_refund     PENDING  → REFUNDED   (full refund after the timeout)

Each transition holds the payment's lock, pins the admin policy so admin
changes wait for it, and runs in one database transaction. Ledger transfers
happen last inside that transaction; when the ledger refuses, the transaction
rolls back and the record keeps its status, so the same call can simply be
retried.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from settlement.core.errors import (
    InvalidAmount,
    NotFound,
    PolicyViolation,
    SettlementError,
    TimeoutNotReached,
    TransferFailed,
    UnsupportedAsset,
)
from settlement.core.locks import KeyedLock
from settlement.models.audit_log import AuditLog
from settlement.models.escrow_payment import EscrowPayment
from settlement.services.assets import AssetRef
from settlement.services.audit import get_audit_trail, log_audit
from settlement.services.clock import Clock, ManualClock
from settlement.services.collaborators import (
    ListingDirectory,
    ReputationRecorder,
    TransactionOutcome,
)
from settlement.services.fees import BPS_DENOMINATOR, compute_fee, split_resolution
from settlement.services.ledger.base import LedgerAdapter, LedgerError, Transfer
from settlement.services.notification import notify_transaction_outcome, outcome_for_share
from settlement.services.payment_state_machine import (
    PaymentAction,
    PaymentStatus,
    get_available_actions,
    roles_for,
    validate_transition,
)
from settlement.services.policy import AdminPolicy, PolicySnapshot
from settlement.services.registry import EscrowRegistry

logger = logging.getLogger(__name__)

MAX_AMOUNT = (1 << 63) - 1  # BIGINT column range
MAX_PAYMENT_ID_LEN = 128
MAX_NOTE_LEN = 1024
SYSTEM_CALLER = "system"


class SettlementEngine:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        policy: AdminPolicy,
        ledger: LedgerAdapter,
        *,
        escrow_account: str,
        clock: Clock | None = None,
        registry: EscrowRegistry | None = None,
        reputation: ReputationRecorder | None = None,
        listings: ListingDirectory | None = None,
    ) -> None:
        if not escrow_account:
            raise PolicyViolation("Escrow holding account is required")
        self.session_factory = session_factory
        self.policy = policy
        self.ledger = ledger
        self.escrow_account = escrow_account
        self.clock = clock or ManualClock()
        self.registry = registry or EscrowRegistry()
        self.reputation = reputation
        self.listings = listings
        self._locks = KeyedLock()

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def _transition(
        self, payment_id: str,
    ) -> AsyncIterator[tuple[AsyncSession, EscrowPayment, PolicySnapshot]]:
        """Lock the payment, pin the policy, then load the row for update.

        The policy is pinned after the payment lock so a call queued behind
        another sees admin changes made while it waited.
        """
        async with self._locks.hold(payment_id):
            async with self.policy.pinned() as policy:
                async with self.session_factory() as db:
                    async with db.begin():
                        payment = await self.registry.require(db, payment_id, for_update=True)
                        yield db, payment, policy

    async def _move_funds(self, payment_id: str, legs: list[Transfer]) -> None:
        legs = [leg for leg in legs if leg.amount > 0]
        if not legs:
            return
        try:
            if len(legs) == 1:
                leg = legs[0]
                await self.ledger.transfer(
                    leg.sender, leg.recipient, leg.amount, leg.asset, leg.reference,
                )
            else:
                await self.ledger.transfer_many(legs)
        except LedgerError as exc:
            logger.warning(
                "Ledger refused %d transfer(s) for payment %s: %s", len(legs), payment_id, exc,
            )
            raise TransferFailed(str(exc), payment_id=payment_id) from exc

    def _leg(self, payment: EscrowPayment, recipient: str, amount: int, tag: str) -> Transfer:
        return Transfer(
            sender=self.escrow_account,
            recipient=recipient,
            amount=amount,
            asset=payment.asset,
            reference=f"{payment.payment_id}:{tag}",
        )

    @staticmethod
    def _roles(caller: str, payment: EscrowPayment, policy: PolicySnapshot):
        return roles_for(caller, payment.buyer, payment.seller, policy.admin)

    # ------------------------------------------------------------------
    # create
    # ------------------------------------------------------------------

    async def create_payment(
        self,
        caller: str,
        payment_id: str,
        seller: str,
        amount: int,
        asset: AssetRef | None = None,
        note: str | None = None,
        listing_id: str | None = None,
    ) -> EscrowPayment:
        """Escrow ``amount`` from the caller (the buyer) for ``seller``.

        The fee is fixed here from the current policy rate and never
        recomputed. The buyer's funds move into the escrow account in the
        same transaction that inserts the record.
        """
        asset = asset or AssetRef.native()

        if not payment_id or len(payment_id) > MAX_PAYMENT_ID_LEN:
            raise PolicyViolation(
                f"payment_id must be 1..{MAX_PAYMENT_ID_LEN} characters", payment_id=payment_id,
            )
        _check_amount(amount, payment_id)
        if not seller or seller == caller:
            raise PolicyViolation("Buyer and seller must be different accounts", payment_id=payment_id)
        if note is not None and len(note) > MAX_NOTE_LEN:
            raise PolicyViolation(f"note exceeds {MAX_NOTE_LEN} characters", payment_id=payment_id)
        if listing_id is not None:
            await self._check_listing(listing_id, payment_id, seller, amount, asset)

        async with self._locks.hold(payment_id), self.policy.pinned() as policy:
            if not policy.supports(asset):
                raise UnsupportedAsset(f"Asset {asset.identity} is not accepted", payment_id=payment_id)
            _, fee = compute_fee(amount, policy.fee_rate_bps)
            height = self.clock.now()
            async with self.session_factory() as db:
                async with db.begin():
                    payment = EscrowPayment(
                        payment_id=payment_id,
                        buyer=caller,
                        seller=seller,
                        amount=amount,
                        fee_rate_bps=policy.fee_rate_bps,
                        fee_amount=fee,
                        asset_kind=asset.kind.value,
                        asset_contract=asset.contract,
                        asset_token_id=asset.token_id,
                        status=PaymentStatus.PENDING.value,
                        created_height=height,
                        note=note,
                        listing_id=listing_id,
                    )
                    await self.registry.insert(db, payment)
                    log_audit(
                        db,
                        payment_id=payment_id,
                        action="create_payment",
                        actor=caller,
                        to_status=PaymentStatus.PENDING.value,
                        details={"amount": amount, "fee": fee, "asset": str(asset)},
                    )
                    await db.flush()
                    await self._move_funds(
                        payment_id,
                        [Transfer(caller, self.escrow_account, amount, asset, f"{payment_id}:deposit")],
                    )

        logger.info(
            "Created payment %s: buyer=%s seller=%s amount=%s %s fee=%s",
            payment_id, caller, seller, amount, asset, fee,
        )
        return payment

    async def _check_listing(
        self, listing_id: str, payment_id: str, seller: str, amount: int, asset: AssetRef,
    ) -> None:
        if self.listings is None:
            raise PolicyViolation("Listing lookups are not configured", payment_id=payment_id)
        quote = await self.listings.get_listing(listing_id)
        if quote is None:
            raise NotFound(f"Listing {listing_id} not found", payment_id=payment_id)
        if quote.seller != seller:
            raise PolicyViolation(
                f"Listing {listing_id} belongs to {quote.seller}, not {seller}", payment_id=payment_id,
            )
        if quote.price != amount:
            raise InvalidAmount(
                f"Listing {listing_id} costs {quote.price}, got {amount}", payment_id=payment_id,
            )
        if quote.asset != asset:
            raise UnsupportedAsset(
                f"Listing {listing_id} is priced in {quote.asset}", payment_id=payment_id,
            )

    # ------------------------------------------------------------------
    # transitions
    # ------------------------------------------------------------------

    async def confirm_delivery(self, caller: str, payment_id: str) -> EscrowPayment:
        async with self._transition(payment_id) as (db, payment, policy):
            new_status = validate_transition(
                payment.status, PaymentAction.CONFIRM_DELIVERY,
                self._roles(caller, payment, policy), payment_id=payment_id,
            )
            old_status = self.registry.advance(payment, new_status, self.clock.now())
            payment.seller_payout = payment.net_amount
            payment.fee_collected = payment.fee_amount
            payment.buyer_refund = 0
            payment.resolution = TransactionOutcome.SUCCESS.value
            log_audit(
                db,
                payment_id=payment_id,
                action=PaymentAction.CONFIRM_DELIVERY.value,
                actor=caller,
                from_status=old_status,
                to_status=new_status.value,
                details={"seller_payout": payment.seller_payout, "fee": payment.fee_amount,
                         "treasury": policy.treasury},
            )
            await db.flush()
            await self._move_funds(payment_id, [
                self._leg(payment, payment.seller, payment.net_amount, "release"),
                self._leg(payment, policy.treasury, payment.fee_amount, "fee"),
            ])

        logger.info(
            "Payment %s completed: seller %s received %s, fee %s",
            payment_id, payment.seller, payment.seller_payout, payment.fee_collected,
        )
        await notify_transaction_outcome(
            self.reputation, payment_id, payment.buyer, payment.seller, TransactionOutcome.SUCCESS,
        )
        return payment

    async def raise_dispute(
        self, caller: str, payment_id: str, reason: str | None = None,
    ) -> EscrowPayment:
        if reason is not None and len(reason) > MAX_NOTE_LEN:
            raise PolicyViolation(f"reason exceeds {MAX_NOTE_LEN} characters", payment_id=payment_id)
        async with self._transition(payment_id) as (db, payment, policy):
            new_status = validate_transition(
                payment.status, PaymentAction.RAISE_DISPUTE,
                self._roles(caller, payment, policy), payment_id=payment_id,
            )
            height = self.clock.now()
            old_status = self.registry.advance(payment, new_status, height)
            payment.disputed_by = caller
            payment.disputed_height = height
            payment.dispute_reason = reason
            log_audit(
                db,
                payment_id=payment_id,
                action=PaymentAction.RAISE_DISPUTE.value,
                actor=caller,
                from_status=old_status,
                to_status=new_status.value,
                details={"reason": reason} if reason else None,
            )

        logger.info("Payment %s disputed by %s", payment_id, caller)
        return payment

    async def resolve_dispute(
        self, caller: str, payment_id: str, seller_share_bps: int,
    ) -> EscrowPayment:
        """Settle a disputed payment; ``seller_share_bps`` of the gross goes to the seller.

        The fee uses the rate frozen at creation and applies to the seller's
        share only.
        """
        async with self._transition(payment_id) as (db, payment, policy):
            new_status = validate_transition(
                payment.status, PaymentAction.RESOLVE_DISPUTE,
                self._roles(caller, payment, policy), payment_id=payment_id,
            )
            if (
                isinstance(seller_share_bps, bool)
                or not isinstance(seller_share_bps, int)
                or not 0 <= seller_share_bps <= BPS_DENOMINATOR
            ):
                raise PolicyViolation(
                    f"seller_share_bps must be between 0 and {BPS_DENOMINATOR}, got {seller_share_bps!r}",
                    payment_id=payment_id,
                )

            split = split_resolution(payment.amount, seller_share_bps, payment.fee_rate_bps)
            outcome = outcome_for_share(seller_share_bps)
            old_status = self.registry.advance(payment, new_status, self.clock.now())
            payment.seller_share_bps = seller_share_bps
            payment.seller_payout = split.seller_payout
            payment.buyer_refund = split.buyer_refund
            payment.fee_collected = split.fee
            payment.resolution = outcome.value
            log_audit(
                db,
                payment_id=payment_id,
                action=PaymentAction.RESOLVE_DISPUTE.value,
                actor=caller,
                from_status=old_status,
                to_status=new_status.value,
                details={"seller_share_bps": seller_share_bps, **split._asdict()},
            )
            await db.flush()
            await self._move_funds(payment_id, [
                self._leg(payment, payment.seller, split.seller_payout, "release"),
                self._leg(payment, policy.treasury, split.fee, "fee"),
                self._leg(payment, payment.buyer, split.buyer_refund, "refund"),
            ])

        logger.info(
            "Payment %s resolved (%s): seller=%s buyer=%s fee=%s",
            payment_id, outcome, split.seller_payout, split.buyer_refund, split.fee,
        )
        await notify_transaction_outcome(
            self.reputation, payment_id, payment.buyer, payment.seller, outcome,
        )
        return payment

    async def expire_refund(self, caller: str, payment_id: str) -> EscrowPayment:
        """Refund the full amount once the escrow timeout has elapsed.

        Only PENDING payments qualify, so an open dispute blocks the refund
        no matter how late it is.
        """
        async with self._transition(payment_id) as (db, payment, policy):
            new_status = validate_transition(
                payment.status, PaymentAction.EXPIRE_REFUND,
                self._roles(caller, payment, policy), payment_id=payment_id,
            )
            now = self.clock.now()
            elapsed = now - payment.created_height
            if elapsed < policy.escrow_timeout:
                raise TimeoutNotReached(
                    f"Escrow times out after {policy.escrow_timeout}, only {elapsed} elapsed",
                    payment_id=payment_id,
                    current=payment.status,
                    action=PaymentAction.EXPIRE_REFUND.value,
                )
            old_status = self.registry.advance(payment, new_status, now)
            payment.seller_payout = 0
            payment.buyer_refund = payment.amount
            payment.fee_collected = 0
            payment.resolution = "expired"
            log_audit(
                db,
                payment_id=payment_id,
                action=PaymentAction.EXPIRE_REFUND.value,
                actor=caller,
                from_status=old_status,
                to_status=new_status.value,
                details={"refund": payment.amount, "elapsed": elapsed},
            )
            await db.flush()
            await self._move_funds(payment_id, [
                self._leg(payment, payment.buyer, payment.amount, "refund"),
            ])

        logger.info("Payment %s expired: refunded %s to %s", payment_id, payment.amount, payment.buyer)
        return payment

    async def expire_overdue(
        self,
        caller: str = SYSTEM_CALLER,
        *,
        after: str | None = None,
        limit: int = 100,
    ) -> tuple[list[str], str | None]:
        """Refund one page of overdue PENDING payments.

        Returns the refunded ids and the cursor for the next page (None when
        the scan is exhausted). Failures are logged and skipped; they stay
        PENDING and come back on the next sweep.
        """
        if limit < 1:
            raise PolicyViolation(f"limit must be at least 1, got {limit}")
        policy = self.policy.snapshot()
        cutoff = self.clock.now() - policy.escrow_timeout
        async with self.session_factory() as db:
            candidates = await self.registry.scan_overdue(db, cutoff, after=after, limit=limit)

        refunded: list[str] = []
        for payment_id in candidates:
            try:
                await self.expire_refund(caller, payment_id)
                refunded.append(payment_id)
            except SettlementError as exc:
                # A dispute or another caller may have won the race
                logger.warning("Skipping overdue payment %s: %s", payment_id, exc)

        next_cursor = candidates[-1] if len(candidates) == limit else None
        return refunded, next_cursor

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------

    async def get_payment(self, payment_id: str) -> EscrowPayment | None:
        async with self.session_factory() as db:
            return await self.registry.get(db, payment_id)

    async def get_user_purchases(self, user: str) -> list[str]:
        async with self.session_factory() as db:
            return await self.registry.list_purchases(db, user)

    async def get_user_sales(self, user: str) -> list[str]:
        async with self.session_factory() as db:
            return await self.registry.list_sales(db, user)

    async def get_audit_trail(self, payment_id: str) -> list[AuditLog]:
        async with self.session_factory() as db:
            return await get_audit_trail(db, payment_id)

    async def available_actions(self, caller: str, payment_id: str) -> list[str]:
        payment = await self.get_payment(payment_id)
        if payment is None:
            raise NotFound("Payment not found", payment_id=payment_id)
        policy = self.policy.snapshot()
        return get_available_actions(payment.status, self._roles(caller, payment, policy))


def _check_amount(amount: int, payment_id: str) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidAmount(f"Amount must be an integer, got {amount!r}", payment_id=payment_id)
    if amount <= 0:
        raise InvalidAmount("Amount must be greater than zero", payment_id=payment_id)
    if amount > MAX_AMOUNT:
        raise InvalidAmount(f"Amount exceeds {MAX_AMOUNT}", payment_id=payment_id)
