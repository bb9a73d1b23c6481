"""Interfaces to the marketplace services the engine talks to.

The engine never owns reputation scores or listings; it only pushes
outcomes to a ReputationRecorder and reads quotes from a ListingDirectory.
"""

import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol

import httpx

from settlement.services.assets import AssetRef

logger = logging.getLogger(__name__)


class TransactionOutcome(StrEnum):
    SUCCESS = "success"  # buyer confirmed delivery
    DISPUTE_RELEASED = "dispute_released"  # admin released everything to seller
    DISPUTE_REFUNDED = "dispute_refunded"  # admin refunded everything to buyer
    DISPUTE_SPLIT = "dispute_split"


@dataclass(frozen=True)
class ListingQuote:
    listing_id: str
    seller: str
    price: int
    asset: AssetRef


class ReputationRecorder(Protocol):
    async def record_transaction_outcome(
        self, buyer: str, seller: str, outcome: TransactionOutcome,
    ) -> None: ...


class ListingDirectory(Protocol):
    async def get_listing(self, listing_id: str) -> ListingQuote | None: ...


class HttpReputationRecorder:
    """Posts outcomes to the reputation service."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def record_transaction_outcome(
        self, buyer: str, seller: str, outcome: TransactionOutcome,
    ) -> None:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            resp = await client.post(
                f"{self.base_url}/transactions",
                json={"buyer": buyer, "seller": seller, "outcome": outcome.value},
            )
        resp.raise_for_status()


class HttpListingDirectory:
    """Reads authoritative seller / price for a catalog item."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def get_listing(self, listing_id: str) -> ListingQuote | None:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            resp = await client.get(f"{self.base_url}/listings/{listing_id}")
        if resp.status_code == 404:
            return None
        resp.raise_for_status()
        data = resp.json()
        return ListingQuote(
            listing_id=listing_id,
            seller=data["seller"],
            price=int(data["price"]),
            asset=AssetRef.parse(data.get("asset", "native")),
        )
