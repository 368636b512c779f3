"""HTTP client for the signing request queue.

The queue exposes two kinds of resources:
- ``connection``: GET the attached account/chain, POST ``null`` or
  ``[account, chainId]`` to change it
- ``transaction`` / ``signing``: GET ``.../request`` for the next pending item,
  POST ``.../response`` with the outcome

Every reply is wrapped as ``{"status": "ok", "data": ...}``.
"""

import json
import logging
from typing import Any, Optional

import httpx

from walletbridge.errors import InvalidResponseError, NetworkTransientError
from walletbridge.queue.models import (
    ConnectionStatus,
    OutcomeRecord,
    PendingRequest,
    PendingSigning,
    PendingTransaction,
)

logger = logging.getLogger(__name__)

SESSION_TOKEN_HEADER = "X-Session-Token"


class QueueClient:
    """Minimal request/response wrapper around the queue's HTTP surface."""

    def __init__(
        self,
        base_url: str,
        session_token: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize client.

        Args:
            base_url: Queue base URL including the API prefix
            session_token: Optional session token header value
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (tests)
        """
        headers = {"Content-Type": "application/json"}
        if session_token:
            headers[SESSION_TOKEN_HEADER] = session_token

        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def _request(self, method: str, path: str, body: Any = None, send_body: bool = False) -> Any:
        content = json.dumps(body) if send_body else None
        try:
            response = await self._client.request(method, path, content=content)
        except httpx.HTTPError as e:
            raise NetworkTransientError(f"API request failed: {method} {path}: {e}") from e

        if response.is_error:
            raise NetworkTransientError(
                f"API request failed: {response.status_code} {response.reason_phrase}"
            )

        try:
            return response.json()
        except ValueError as e:
            raise InvalidResponseError("Invalid JSON response") from e

    @staticmethod
    def _is_ok(payload: Any) -> bool:
        return isinstance(payload, dict) and payload.get("status") == "ok"

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------

    async def get_connection(self) -> ConnectionStatus:
        """Read the queue's connection state.

        Raises:
            NetworkTransientError: On transport failure or error status
        """
        payload = await self._request("GET", "/connection")
        if not self._is_ok(payload):
            raise InvalidResponseError(f"Connection state unavailable: {payload!r}")
        return ConnectionStatus.from_wire(payload.get("data"))

    async def set_connection(self, account: str, chain_id: int) -> None:
        """Attach ``account`` on ``chain_id``."""
        logger.debug(f"Pushing connection {account} on chain {chain_id}")
        await self._request("POST", "/connection", [account, chain_id], send_body=True)

    async def clear_connection(self) -> None:
        """Mark the queue as disconnected."""
        logger.debug("Pushing disconnected marker")
        await self._request("POST", "/connection", None, send_body=True)

    # ------------------------------------------------------------------
    # Pending requests
    # ------------------------------------------------------------------

    async def _next(self, queue: str) -> Optional[Any]:
        payload = await self._request("GET", f"/{queue}/request")
        if not self._is_ok(payload):
            return None
        return payload.get("data")

    async def next_transaction(self) -> Optional[PendingTransaction]:
        data = await self._next("transaction")
        return PendingTransaction.from_wire(data) if data else None

    async def next_signing(self) -> Optional[PendingSigning]:
        data = await self._next("signing")
        return PendingSigning.from_wire(data) if data else None

    async def next_of_kind(self, kind: str) -> Optional[PendingRequest]:
        """Head of the transaction or signing queue."""
        if kind == "transaction":
            return await self.next_transaction()
        return await self.next_signing()

    async def next_request(self) -> Optional[PendingRequest]:
        """Next pending item. Transactions take priority over signing requests.

        A malformed transaction item does not hide the signing queue.
        """
        try:
            transaction = await self.next_transaction()
        except InvalidResponseError as e:
            logger.warning(f"Skipping unreadable pending transaction: {e}")
            transaction = None
        if transaction is not None:
            return transaction
        return await self.next_signing()

    async def respond(self, outcome: OutcomeRecord) -> None:
        """Push the outcome of a request to its response endpoint."""
        logger.debug(f"Pushing {outcome.kind} response for {outcome.request_id}")
        await self._request("POST", f"/{outcome.kind}/response", outcome.to_wire(), send_body=True)

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "QueueClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()
