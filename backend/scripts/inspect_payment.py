"""Operator script: show a payment with its audit trail, optionally retry expiry.

A payout that the ledger refused leaves the payment in its previous status,
so once the balance problem is fixed the same transition can be re-run.

Usage:
    cd backend
    python -m scripts.inspect_payment p-123
    python -m scripts.inspect_payment --expire p-123
"""

import asyncio
import json
import sys

from settlement.core.errors import SettlementError
from settlement.core.logging_config import setup_logging
from settlement.db.session import db_engine
from settlement.services.runtime import get_engine
from settlement.services.settlement import SYSTEM_CALLER


async def inspect_payment(payment_id: str, expire: bool = False) -> None:
    settlement = get_engine()
    payment = await settlement.get_payment(payment_id)

    if payment is None:
        print(f"No payment found for payment_id={payment_id}")
        return

    print(f"Payment {payment_id}:")
    print(f"  buyer:          {payment.buyer}")
    print(f"  seller:         {payment.seller}")
    print(f"  amount:         {payment.amount} {payment.asset}")
    print(f"  fee:            {payment.fee_amount} ({payment.fee_rate_bps} bps)")
    print(f"  status:         {payment.status}")
    print(f"  created_height: {payment.created_height}")
    print(f"  now:            {settlement.clock.now()}")
    print()

    print("Audit trail:")
    for entry in await settlement.get_audit_trail(payment_id):
        details = json.loads(entry.details) if entry.details else {}
        print(
            f"  #{entry.id} {entry.action}: {entry.from_status or '-'} -> {entry.to_status}"
            f" by {entry.actor} {details}"
        )
    print()

    if expire:
        print("Retrying expire_refund...")
        try:
            payment = await settlement.expire_refund(SYSTEM_CALLER, payment_id)
        except SettlementError as exc:
            print(f"Refund not performed: {exc}")
        else:
            print(f"Refunded {payment.buyer_refund} to {payment.buyer}; status={payment.status}")

    await db_engine.dispose()


def main() -> None:
    args = sys.argv[1:]
    expire = "--expire" in args
    args = [a for a in args if a != "--expire"]

    if len(args) != 1:
        print("Usage: python -m scripts.inspect_payment [--expire] <payment_id>")
        sys.exit(1)

    setup_logging()
    print(f"=== Payment {args[0]} ===")
    asyncio.run(inspect_payment(args[0], expire=expire))


if __name__ == "__main__":
    main()
