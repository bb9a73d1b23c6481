"""Fee arithmetic — integer basis points, floor rounding."""

from typing import NamedTuple

BPS_DENOMINATOR = 10_000
MAX_FEE_RATE_BPS = 1_000  # 10% ceiling, enforced by AdminPolicy


class ResolutionSplit(NamedTuple):
    seller_payout: int
    buyer_refund: int
    fee: int


def compute_fee(amount: int, rate_bps: int) -> tuple[int, int]:
    """Return (net, fee) for a gross amount.

    The rate is trusted here; range checks happen when the policy is set.
    """
    fee = amount * rate_bps // BPS_DENOMINATOR
    return amount - fee, fee


def split_resolution(amount: int, seller_share_bps: int, rate_bps: int) -> ResolutionSplit:
    """Split a disputed escrow between seller and buyer.

    The seller's gross share is floored; the buyer receives the remainder.
    The platform fee is taken from the seller's share only, so a full
    release matches confirm_delivery and a zero share is a fee-free refund.
    """
    seller_gross = amount * seller_share_bps // BPS_DENOMINATOR
    seller_net, fee = compute_fee(seller_gross, rate_bps)
    return ResolutionSplit(
        seller_payout=seller_net,
        buyer_refund=amount - seller_gross,
        fee=fee,
    )
