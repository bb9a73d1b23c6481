"""Tests for reputation / listing clients and outcome notification."""

import json
from unittest.mock import AsyncMock

import httpx
import pytest

from settlement.services.assets import AssetRef
from settlement.services.collaborators import (
    HttpListingDirectory,
    HttpReputationRecorder,
    TransactionOutcome,
)
from settlement.services.notification import notify_transaction_outcome, outcome_for_share


class TestOutcomeForShare:
    @pytest.mark.parametrize(
        "share, outcome",
        [
            (10_000, TransactionOutcome.DISPUTE_RELEASED),
            (0, TransactionOutcome.DISPUTE_REFUNDED),
            (1, TransactionOutcome.DISPUTE_SPLIT),
            (5000, TransactionOutcome.DISPUTE_SPLIT),
            (9999, TransactionOutcome.DISPUTE_SPLIT),
        ],
    )
    def test_mapping(self, share, outcome):
        assert outcome_for_share(share) == outcome


class TestNotifyTransactionOutcome:
    @pytest.mark.asyncio
    async def test_no_recorder(self):
        assert await notify_transaction_outcome(
            None, "p1", "b", "s", TransactionOutcome.SUCCESS,
        ) is False

    @pytest.mark.asyncio
    async def test_records(self):
        recorder = AsyncMock()
        ok = await notify_transaction_outcome(recorder, "p1", "b", "s", TransactionOutcome.SUCCESS)
        assert ok is True
        recorder.record_transaction_outcome.assert_awaited_once_with(
            "b", "s", TransactionOutcome.SUCCESS,
        )

    @pytest.mark.asyncio
    async def test_failure_is_logged_not_raised(self, caplog):
        recorder = AsyncMock()
        recorder.record_transaction_outcome.side_effect = RuntimeError("reputation down")

        ok = await notify_transaction_outcome(
            recorder, "p1", "b", "s", TransactionOutcome.DISPUTE_SPLIT,
        )

        assert ok is False
        assert "Failed to record outcome" in caplog.text


class TestHttpReputationRecorder:
    @pytest.mark.asyncio
    async def test_posts_outcome(self):
        seen: list[httpx.Request] = []

        def handler(request):
            seen.append(request)
            return httpx.Response(201)

        recorder = HttpReputationRecorder(
            "http://reputation.test/", transport=httpx.MockTransport(handler),
        )
        await recorder.record_transaction_outcome("b", "s", TransactionOutcome.DISPUTE_REFUNDED)

        assert str(seen[0].url) == "http://reputation.test/transactions"
        assert json.loads(seen[0].content) == {
            "buyer": "b", "seller": "s", "outcome": "dispute_refunded",
        }

    @pytest.mark.asyncio
    async def test_error_status_raises(self):
        recorder = HttpReputationRecorder(
            "http://reputation.test",
            transport=httpx.MockTransport(lambda request: httpx.Response(500)),
        )
        with pytest.raises(httpx.HTTPStatusError):
            await recorder.record_transaction_outcome("b", "s", TransactionOutcome.SUCCESS)


class TestHttpListingDirectory:
    @pytest.mark.asyncio
    async def test_returns_quote(self):
        def handler(request):
            assert request.url.path == "/listings/l-1"
            return httpx.Response(
                200, json={"seller": "s", "price": "1000", "asset": "token:c1"},
            )

        directory = HttpListingDirectory(
            "http://listings.test", transport=httpx.MockTransport(handler),
        )
        quote = await directory.get_listing("l-1")

        assert quote.listing_id == "l-1"
        assert quote.seller == "s"
        assert quote.price == 1000
        assert quote.asset == AssetRef.token("c1")

    @pytest.mark.asyncio
    async def test_asset_defaults_to_native(self):
        directory = HttpListingDirectory(
            "http://listings.test",
            transport=httpx.MockTransport(
                lambda request: httpx.Response(200, json={"seller": "s", "price": 5}),
            ),
        )
        quote = await directory.get_listing("l-2")
        assert quote.asset == AssetRef.native()

    @pytest.mark.asyncio
    async def test_missing_listing(self):
        directory = HttpListingDirectory(
            "http://listings.test",
            transport=httpx.MockTransport(lambda request: httpx.Response(404)),
        )
        assert await directory.get_listing("nope") is None
