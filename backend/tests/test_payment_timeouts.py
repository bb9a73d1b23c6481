"""Tests for the overdue-payment sweep and its Celery task."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from settlement.workers.payment_timeouts import expire_overdue_payments, sweep_overdue_payments


class TestSweepOverduePayments:
    @pytest.mark.asyncio
    async def test_refunds_every_page(self, engine, ledger, clock):
        for i in range(5):
            await engine.create_payment("buyer", f"p{i}", "seller", 100)
        clock.advance(1440)

        total = await sweep_overdue_payments(engine, batch_size=2)

        assert total == 5
        for i in range(5):
            assert (await engine.get_payment(f"p{i}")).status == "REFUNDED"
        assert ledger.balance_of("buyer") == 1_000_000

    @pytest.mark.asyncio
    async def test_nothing_overdue(self, engine, clock):
        await engine.create_payment("buyer", "p1", "seller", 100)
        clock.advance(1439)
        assert await sweep_overdue_payments(engine, batch_size=10) == 0
        assert (await engine.get_payment("p1")).status == "PENDING"

    @pytest.mark.asyncio
    async def test_page_cap(self, engine, clock, caplog):
        for i in range(5):
            await engine.create_payment("buyer", f"p{i}", "seller", 100)
        clock.advance(1440)

        total = await sweep_overdue_payments(engine, batch_size=2, max_pages=1)

        assert total == 2
        assert "stopped after 1 pages" in caplog.text
        # The rest is picked up by the next run
        assert await sweep_overdue_payments(engine, batch_size=2) == 3

    @pytest.mark.asyncio
    async def test_follows_cursor(self):
        engine = MagicMock()
        engine.expire_overdue = AsyncMock(side_effect=[
            (["a", "b"], "b"),
            (["c"], "d"),
            ([], None),
        ])

        assert await sweep_overdue_payments(engine, batch_size=2) == 3
        afters = [call.kwargs["after"] for call in engine.expire_overdue.await_args_list]
        assert afters == [None, "b", "d"]


class TestExpireOverduePaymentsTask:
    def test_runs_sweep_with_configured_batch(self):
        engine = MagicMock()
        engine.expire_overdue = AsyncMock(return_value=(["p1"], None))

        with patch("settlement.services.runtime.get_engine", return_value=engine), \
             patch("settlement.workers.payment_timeouts.settings") as mock_settings:
            mock_settings.expire_sweep_batch_size = 25
            assert expire_overdue_payments() == 1

        engine.expire_overdue.assert_awaited_once_with("system", after=None, limit=25)
