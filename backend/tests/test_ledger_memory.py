"""Tests for the in-memory ledger and the default batch compensation."""

import pytest

from settlement.services.assets import AssetRef
from settlement.services.ledger.base import (
    AssetTransferRejected,
    InsufficientBalance,
    LedgerAdapter,
    LedgerError,
    Transfer,
)
from settlement.services.ledger.memory import InMemoryLedger

NATIVE = AssetRef.native()
USDX = AssetRef.token("usdx")


@pytest.fixture
def mem_ledger() -> InMemoryLedger:
    ledger = InMemoryLedger()
    ledger.credit("alice", 100)
    ledger.credit("alice", 50, USDX)
    return ledger


class TestTransfer:
    @pytest.mark.asyncio
    async def test_moves_balance(self, mem_ledger):
        await mem_ledger.transfer("alice", "bob", 40, NATIVE, "r1")
        assert mem_ledger.balance_of("alice") == 60
        assert mem_ledger.balance_of("bob") == 40
        assert mem_ledger.history == [Transfer("alice", "bob", 40, NATIVE, "r1")]

    @pytest.mark.asyncio
    async def test_balances_are_per_asset(self, mem_ledger):
        await mem_ledger.transfer("alice", "bob", 50, USDX)
        assert mem_ledger.balance_of("bob", USDX) == 50
        assert mem_ledger.balance_of("bob") == 0
        assert mem_ledger.balance_of("alice") == 100

    @pytest.mark.asyncio
    async def test_insufficient_balance_moves_nothing(self, mem_ledger):
        with pytest.raises(InsufficientBalance) as exc_info:
            await mem_ledger.transfer("alice", "bob", 101, NATIVE, "r1")
        assert exc_info.value.reference == "r1"
        assert mem_ledger.balance_of("alice") == 100
        assert mem_ledger.history == []

    @pytest.mark.asyncio
    async def test_frozen_asset_rejected(self, mem_ledger):
        mem_ledger.frozen_assets.add(USDX.identity)
        with pytest.raises(AssetTransferRejected):
            await mem_ledger.transfer("alice", "bob", 1, USDX)
        assert mem_ledger.balance_of("alice", USDX) == 50

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [0, -5])
    async def test_non_positive_amount_rejected(self, mem_ledger, amount):
        with pytest.raises(AssetTransferRejected):
            await mem_ledger.transfer("alice", "bob", amount, NATIVE)


class TestTransferMany:
    @pytest.mark.asyncio
    async def test_all_legs_applied(self, mem_ledger):
        await mem_ledger.transfer_many([
            Transfer("alice", "escrow", 100, NATIVE),
            Transfer("escrow", "bob", 90, NATIVE),
            Transfer("escrow", "treasury", 10, NATIVE),
        ])
        assert mem_ledger.balance_of("alice") == 0
        assert mem_ledger.balance_of("escrow") == 0
        assert mem_ledger.balance_of("bob") == 90
        assert mem_ledger.balance_of("treasury") == 10

    @pytest.mark.asyncio
    async def test_failing_leg_applies_nothing(self, mem_ledger):
        with pytest.raises(InsufficientBalance):
            await mem_ledger.transfer_many([
                Transfer("alice", "bob", 60, NATIVE, "a"),
                Transfer("alice", "carol", 60, NATIVE, "b"),
            ])
        assert mem_ledger.balance_of("alice") == 100
        assert mem_ledger.balance_of("bob") == 0
        assert mem_ledger.history == []


class FlakyLedger(InMemoryLedger):
    """Uses the base-class transfer_many and fails the leg with a given reference."""

    def __init__(self, fail_reference: str) -> None:
        super().__init__()
        self.fail_reference = fail_reference

    async def transfer(self, sender, recipient, amount, asset, reference=None):
        if reference == self.fail_reference:
            raise AssetTransferRejected("contract said no", reference=reference)
        await super().transfer(sender, recipient, amount, asset, reference)

    async def transfer_many(self, transfers):
        await LedgerAdapter.transfer_many(self, transfers)


class TestCompensation:
    @pytest.mark.asyncio
    async def test_completed_legs_are_reversed(self):
        ledger = FlakyLedger(fail_reference="p1:refund")
        ledger.credit("escrow", 100)

        with pytest.raises(AssetTransferRejected):
            await ledger.transfer_many([
                Transfer("escrow", "seller", 40, NATIVE, "p1:release"),
                Transfer("escrow", "treasury", 10, NATIVE, "p1:fee"),
                Transfer("escrow", "buyer", 50, NATIVE, "p1:refund"),
            ])

        assert ledger.balance_of("escrow") == 100
        assert ledger.balance_of("seller") == 0
        assert ledger.balance_of("treasury") == 0
        assert [t.reference for t in ledger.history] == [
            "p1:release", "p1:fee", "p1:fee:reversal", "p1:release:reversal",
        ]

    @pytest.mark.asyncio
    async def test_failed_reversal_is_raised(self, caplog):
        ledger = FlakyLedger(fail_reference="p1:release:reversal")
        ledger.credit("escrow", 100)
        ledger.frozen_assets.add(USDX.identity)

        with pytest.raises(LedgerError):
            await ledger.transfer_many([
                Transfer("escrow", "seller", 40, NATIVE, "p1:release"),
                Transfer("escrow", "buyer", 5, USDX, "p1:refund"),
            ])
        assert "manual fix required" in caplog.text
