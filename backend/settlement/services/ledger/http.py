"""Ledger adapter backed by a ledger node's REST API."""

import logging

import httpx
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from settlement.services.assets import AssetRef
from settlement.services.ledger.base import (
    AssetTransferRejected,
    InsufficientBalance,
    LedgerAdapter,
    LedgerUnavailable,
    Transfer,
)

logger = logging.getLogger(__name__)

# Suppress noisy httpx request logging (logs every HTTP request at INFO)
logging.getLogger("httpx").setLevel(logging.WARNING)

INSUFFICIENT_BALANCE_CODES = frozenset({"insufficient_balance", "insufficient_funds"})


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, (httpx.ConnectError, httpx.TimeoutException)):
        return True
    return isinstance(exc, httpx.HTTPStatusError) and exc.response.status_code >= 500


def _asset_json(asset: AssetRef) -> dict:
    return {"kind": asset.kind.value, "contract": asset.contract, "token_id": asset.token_id}


def _transfer_json(leg: Transfer) -> dict:
    return {
        "from": leg.sender,
        "to": leg.recipient,
        "amount": str(leg.amount),
        "asset": _asset_json(leg.asset),
        "reference": leg.reference,
    }


class HttpLedgerAdapter(LedgerAdapter):
    """Thin async wrapper around the ledger node's transfer endpoints.

    Every POST carries an ``Idempotency-Key`` built from the transfer
    reference, so a request retried after a timeout cannot move funds twice.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        *,
        timeout: float = 15,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    def _headers(self, idempotency_key: str | None = None) -> dict[str, str]:
        h: dict[str, str] = {"Accept": "application/json"}
        if self.api_key:
            h["X-API-Key"] = self.api_key
        if idempotency_key:
            h["Idempotency-Key"] = idempotency_key
        return h

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1.5, min=1, max=10),
        retry=retry_if_exception(_is_transient),
        reraise=True,
    )
    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Execute HTTP request with tenacity retry on transient failures."""
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            resp = await client.request(method, url, **kwargs)
        if resp.status_code >= 500:
            resp.raise_for_status()
        return resp

    async def _post(self, path: str, payload: dict, idempotency_key: str | None) -> dict:
        try:
            resp = await self._request(
                "POST",
                f"{self.base_url}{path}",
                json=payload,
                headers=self._headers(idempotency_key),
            )
        except (httpx.HTTPStatusError, httpx.TransportError) as exc:
            logger.warning("Ledger unreachable for %s (key=%s): %s", path, idempotency_key, exc)
            raise LedgerUnavailable(str(exc), reference=idempotency_key) from exc

        if resp.status_code >= 400:
            _raise_for_rejection(resp, idempotency_key)
        return resp.json() if resp.content else {}

    async def transfer(
        self,
        sender: str,
        recipient: str,
        amount: int,
        asset: AssetRef,
        reference: str | None = None,
    ) -> None:
        leg = Transfer(sender, recipient, amount, asset, reference)
        await self._post("/transfers", _transfer_json(leg), reference)
        logger.debug("Ledger transfer ok: %s -> %s %s %s", sender, recipient, amount, asset)

    async def transfer_many(self, transfers: list[Transfer]) -> None:
        """Submit all legs to the node's atomic batch endpoint."""
        if not transfers:
            return
        refs = [leg.reference for leg in transfers if leg.reference]
        batch_key = "+".join(refs) if refs else None
        await self._post(
            "/transfers/batch",
            {"transfers": [_transfer_json(leg) for leg in transfers]},
            batch_key,
        )


def _raise_for_rejection(resp: httpx.Response, reference: str | None) -> None:
    try:
        body = resp.json()
    except ValueError:
        body = {}
    code = str(body.get("error", "")).lower()
    message = body.get("message") or f"ledger returned HTTP {resp.status_code}"
    if code in INSUFFICIENT_BALANCE_CODES:
        raise InsufficientBalance(message, reference=reference)
    raise AssetTransferRejected(message, reference=reference)
