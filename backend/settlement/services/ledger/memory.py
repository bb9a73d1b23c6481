"""In-process ledger keeping balances in a dict. Used by tests and local runs."""

import logging
from collections import defaultdict

from settlement.services.assets import AssetRef
from settlement.services.ledger.base import (
    AssetTransferRejected,
    InsufficientBalance,
    LedgerAdapter,
    LedgerError,
    Transfer,
)

logger = logging.getLogger(__name__)


class InMemoryLedger(LedgerAdapter):
    """Atomic transfers over ``(account, asset)`` balances.

    Assets listed in ``frozen_assets`` reject every transfer, which mimics
    a token contract returning an error.
    """

    def __init__(self) -> None:
        self._balances: dict[tuple[str, str], int] = defaultdict(int)
        self.frozen_assets: set[str] = set()
        self.history: list[Transfer] = []

    def credit(self, account: str, amount: int, asset: AssetRef | None = None) -> None:
        asset = asset or AssetRef.native()
        self._balances[(account, str(asset))] += amount

    def balance_of(self, account: str, asset: AssetRef | None = None) -> int:
        asset = asset or AssetRef.native()
        return self._balances.get((account, str(asset)), 0)

    def _check(self, leg: Transfer, pending: dict[tuple[str, str], int]) -> None:
        if leg.amount <= 0:
            raise AssetTransferRejected(f"Non-positive amount {leg.amount}", reference=leg.reference)
        if leg.asset.identity in self.frozen_assets:
            raise AssetTransferRejected(
                f"Asset {leg.asset.identity} rejected the transfer", reference=leg.reference
            )
        key = (leg.sender, str(leg.asset))
        available = self._balances.get(key, 0) + pending.get(key, 0)
        if available < leg.amount:
            raise InsufficientBalance(
                f"{leg.sender} holds {available} {leg.asset}, needs {leg.amount}",
                reference=leg.reference,
            )

    def _apply(self, leg: Transfer) -> None:
        self._balances[(leg.sender, str(leg.asset))] -= leg.amount
        self._balances[(leg.recipient, str(leg.asset))] += leg.amount
        self.history.append(leg)

    async def transfer(
        self,
        sender: str,
        recipient: str,
        amount: int,
        asset: AssetRef,
        reference: str | None = None,
    ) -> None:
        leg = Transfer(sender, recipient, amount, asset, reference)
        self._check(leg, {})
        self._apply(leg)

    async def transfer_many(self, transfers: list[Transfer]) -> None:
        # Validate every leg against the running deltas before touching balances
        pending: dict[tuple[str, str], int] = defaultdict(int)
        for leg in transfers:
            try:
                self._check(leg, pending)
            except LedgerError:
                logger.info("Batch of %d transfers rejected at ref=%s", len(transfers), leg.reference)
                raise
            pending[(leg.sender, str(leg.asset))] -= leg.amount
            pending[(leg.recipient, str(leg.asset))] += leg.amount
        for leg in transfers:
            self._apply(leg)
