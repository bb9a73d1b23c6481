"""Post-commit notifications to the reputation collaborator."""

import logging

from settlement.services.collaborators import ReputationRecorder, TransactionOutcome

logger = logging.getLogger(__name__)


def outcome_for_share(seller_share_bps: int) -> TransactionOutcome:
    if seller_share_bps >= 10_000:
        return TransactionOutcome.DISPUTE_RELEASED
    if seller_share_bps <= 0:
        return TransactionOutcome.DISPUTE_REFUNDED
    return TransactionOutcome.DISPUTE_SPLIT


async def notify_transaction_outcome(
    recorder: ReputationRecorder | None,
    payment_id: str,
    buyer: str,
    seller: str,
    outcome: TransactionOutcome,
) -> bool:
    """Tell the reputation service how a payment ended.

    Runs after the payout is committed, so a failure here is logged and
    reported as False instead of being raised.
    """
    if recorder is None:
        return False
    try:
        await recorder.record_transaction_outcome(buyer, seller, outcome)
    except Exception:
        logger.exception(
            "Failed to record outcome %s for payment %s (buyer=%s seller=%s)",
            outcome, payment_id, buyer, seller,
        )
        return False
    logger.info("Recorded outcome %s for payment %s", outcome, payment_id)
    return True
