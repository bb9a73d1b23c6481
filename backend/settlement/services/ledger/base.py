"""Ledger adapter contract: atomic value transfers between accounts."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

from settlement.services.assets import AssetRef

logger = logging.getLogger(__name__)


class LedgerError(Exception):
    """The ledger refused a transfer. Nothing moved."""

    def __init__(self, message: str, *, reference: str | None = None):
        self.reference = reference
        super().__init__(message)


class InsufficientBalance(LedgerError):
    pass


class AssetTransferRejected(LedgerError):
    """The asset's contract (or the node) declined the move."""


class LedgerUnavailable(LedgerError):
    """The ledger could not be reached; retry with the same reference."""


@dataclass(frozen=True)
class Transfer:
    sender: str
    recipient: str
    amount: int
    asset: AssetRef
    reference: str | None = None


class LedgerAdapter(ABC):
    """Moves fungible balances. Implementations must be all-or-nothing per call."""

    @abstractmethod
    async def transfer(
        self,
        sender: str,
        recipient: str,
        amount: int,
        asset: AssetRef,
        reference: str | None = None,
    ) -> None:
        """Move ``amount`` of ``asset`` or raise LedgerError without moving anything."""

    async def transfer_many(self, transfers: list[Transfer]) -> None:
        """Execute several legs as one unit.

        Legs run in order. If a leg fails, the legs that already succeeded
        are reversed newest-first and the original error is re-raised.
        Adapters with native batching should override this.
        """
        done: list[Transfer] = []
        for leg in transfers:
            try:
                await self.transfer(leg.sender, leg.recipient, leg.amount, leg.asset, leg.reference)
            except LedgerError:
                await self._compensate(done)
                raise
            done.append(leg)

    async def _compensate(self, done: list[Transfer]) -> None:
        for leg in reversed(done):
            reference = f"{leg.reference}:reversal" if leg.reference else None
            try:
                await self.transfer(leg.recipient, leg.sender, leg.amount, leg.asset, reference)
            except LedgerError:
                logger.critical(
                    "Failed to reverse transfer %s -> %s (%s %s, ref=%s); manual fix required",
                    leg.sender, leg.recipient, leg.amount, leg.asset, leg.reference,
                )
                raise
