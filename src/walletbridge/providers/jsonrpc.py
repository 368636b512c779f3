"""JSON-RPC wallet provider.

Forwards wallet requests to a node that manages unlocked accounts (anvil,
hardhat, geth --dev). Such nodes expose accounts without a prompt, so
``eth_requestAccounts`` is served by ``eth_accounts``. Nodes cannot push
events, so no ``accountsChanged``/``chainChanged`` are emitted.
"""

import itertools
import logging
import uuid
from typing import Any, Optional
from urllib.parse import urlparse

import httpx

from walletbridge.errors import DISCONNECTED, INTERNAL_ERROR, ProviderRpcError
from walletbridge.providers.base import Params, ProviderDetail, ProviderInfo, WalletProvider

logger = logging.getLogger(__name__)

METHOD_ALIASES = {
    "eth_requestAccounts": "eth_accounts",
}


class JsonRpcProvider(WalletProvider):
    """Wallet provider backed by a JSON-RPC HTTP endpoint."""

    def __init__(
        self,
        rpc_url: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize provider.

        Args:
            rpc_url: Node JSON-RPC URL
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests)
        """
        super().__init__()
        self.rpc_url = rpc_url
        self._ids = itertools.count(1)
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def request(self, method: str, params: Params = None) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": METHOD_ALIASES.get(method, method),
            "params": params if params is not None else [],
        }

        try:
            response = await self._client.post(self.rpc_url, json=payload)
        except httpx.HTTPError as e:
            logger.warning(f"RPC {method} to {self.rpc_url} failed: {e}")
            raise ProviderRpcError(f"RPC endpoint unreachable: {e}", code=DISCONNECTED) from e

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderRpcError(
                f"RPC returned invalid JSON (HTTP {response.status_code})", code=INTERNAL_ERROR
            ) from e

        if not isinstance(data, dict):
            raise ProviderRpcError("RPC returned a malformed response", code=INTERNAL_ERROR)

        error = data.get("error")
        if error:
            raise ProviderRpcError(
                error.get("message", "RPC error"),
                code=error.get("code"),
                data=error.get("data"),
            )

        if response.status_code != 200:
            raise ProviderRpcError(f"RPC HTTP error: {response.status_code}", code=INTERNAL_ERROR)

        return data.get("result")

    async def close(self) -> None:
        await self._client.aclose()

    def __repr__(self) -> str:
        return f"JsonRpcProvider(rpc_url={self.rpc_url!r})"


def jsonrpc_detail(rpc_url: str, timeout: float = 30.0) -> ProviderDetail:
    """Build an announcement payload for a JSON-RPC wallet endpoint."""
    host = urlparse(rpc_url).netloc or rpc_url
    return ProviderDetail(
        info=ProviderInfo(
            uuid=str(uuid.uuid5(uuid.NAMESPACE_URL, rpc_url)),
            name=f"JSON-RPC ({host})",
            icon="",
            rdns="dev.walletbridge.jsonrpc",
        ),
        provider=JsonRpcProvider(rpc_url, timeout=timeout),
    )
