"""
HTTP Ledger Adapter
===================

Talks to a JSON ledger endpoint with ``httpx.AsyncClient``.

Protocol:
    POST {endpoint}/ledgers/{address}/entries
        {"index": 120, "entries": [{"name": "121", "uri": "<manifest>/120.json"}, ...]}
        -> 200/202 (submission accepted; may still be dropped)

    GET  {endpoint}/ledgers/{address}
        -> {"itemsLoaded": 130, "itemsAvailable": 9750,
            "items": [{"name": ..., "uri": ...} | null, ...]}

Submission is fire-and-forget: a 2xx only means the ledger accepted the
request. The loader verifies out-of-band by reading the loaded state.

Failure mapping:
- network errors, timeouts, 429 and 5xx -> LedgerWriteFailure (retryable)
- other 4xx -> LedgerError (permanent)
"""

import logging
from typing import Optional

import httpx

from mint_gateway.errors import LedgerError, LedgerWriteFailure
from mint_gateway.ledger.adapter import LedgerBatch, LedgerEntry, LoadedState

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = {408, 425, 429}


class HttpLedgerAdapter:
    def __init__(
        self,
        endpoint: str,
        address: str,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        if not address:
            raise ValueError("Ledger address is required")
        self.address = address
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(base_url=endpoint.rstrip("/"), timeout=timeout)

    async def __aenter__(self) -> "HttpLedgerAdapter":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    def _raise_for_status(self, response: httpx.Response, start_index: Optional[int] = None) -> None:
        status = response.status_code
        if status < 400:
            return
        detail = response.text[:200]
        if status >= 500 or status in RETRYABLE_STATUS:
            raise LedgerWriteFailure(f"Ledger HTTP {status}: {detail}", start_index=start_index)
        raise LedgerError(f"Ledger rejected request (HTTP {status}): {detail}")

    async def publish_batch(self, batch: LedgerBatch) -> None:
        payload = {
            "index": batch.start_index,
            "entries": [entry.to_dict() for entry in batch.entries],
        }
        try:
            response = await self.client.post(f"/ledgers/{self.address}/entries", json=payload)
        except httpx.HTTPError as e:
            raise LedgerWriteFailure(
                f"Ledger request failed: {type(e).__name__}: {e}", start_index=batch.start_index
            ) from e

        self._raise_for_status(response, batch.start_index)
        logger.debug(f"Submitted entries [{batch.start_index}, {batch.end_index})")

    async def fetch_loaded_state(self) -> LoadedState:
        try:
            response = await self.client.get(f"/ledgers/{self.address}")
        except httpx.HTTPError as e:
            raise LedgerWriteFailure(f"Ledger query failed: {type(e).__name__}: {e}") from e

        self._raise_for_status(response)

        # Proxies in front of the ledger can answer 200 with an HTML error page
        try:
            data = response.json()
            entries = {}
            for index, item in enumerate(data.get("items") or []):
                if item and item.get("uri"):
                    entries[index] = LedgerEntry(name=item.get("name", ""), uri=item["uri"])

            return LoadedState(
                items_loaded=int(data.get("itemsLoaded", len(entries))),
                items_available=int(data.get("itemsAvailable", 0)),
                entries=entries,
            )
        except (ValueError, TypeError, AttributeError) as e:
            raise LedgerWriteFailure(
                f"Malformed ledger state: {type(e).__name__}: {e} ({response.text[:80]!r})"
            ) from e
