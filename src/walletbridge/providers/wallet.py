"""Typed capability wrapper around a wallet provider.

The bridge never calls ``provider.request`` with raw method names outside of
this module.
"""

import asyncio
import logging
import time
from typing import Any, Callable, Optional

from walletbridge.chains import parse_chain_id, to_hex_chain_id
from walletbridge.errors import ProviderRejectedError
from walletbridge.providers.base import Listener, Params, WalletProvider

logger = logging.getLogger(__name__)


class Subscription:
    """Active set of event listeners on one provider.

    Closing is idempotent. Usable as a context manager.
    """

    def __init__(self, provider: WalletProvider, listeners: dict[str, Listener]):
        self._provider = provider
        self._listeners = listeners
        for event, listener in listeners.items():
            provider.on(event, listener)

    @property
    def active(self) -> bool:
        return bool(self._listeners)

    def close(self) -> None:
        """Remove all listeners from the provider."""
        for event, listener in self._listeners.items():
            self._provider.remove_listener(event, listener)
        self._listeners = {}

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class Wallet:
    """Capability set consumed from a wallet provider."""

    def __init__(self, provider: WalletProvider):
        self.provider = provider

    async def _request(self, method: str, params: Params = None) -> Any:
        try:
            return await self.provider.request(method, params)
        except ProviderRejectedError:
            raise
        except Exception as e:
            raise ProviderRejectedError(str(e) or e.__class__.__name__) from e

    async def request_accounts(self) -> list[str]:
        """Prompt the user to expose accounts (eth_requestAccounts)."""
        return list(await self._request("eth_requestAccounts") or [])

    async def get_accounts(self) -> list[str]:
        """Accounts already exposed to the bridge, without prompting."""
        return list(await self._request("eth_accounts") or [])

    async def get_chain_id(self) -> Optional[int]:
        """Current chain id, or None if the wallet reports something unparseable."""
        return parse_chain_id(await self._request("eth_chainId"))

    async def switch_chain(self, chain_id: int) -> None:
        await self._request(
            "wallet_switchEthereumChain", [{"chainId": to_hex_chain_id(chain_id)}]
        )

    async def add_chain(self, params: dict) -> None:
        await self._request("wallet_addEthereumChain", [params])

    async def personal_sign(self, message: str, address: str) -> str:
        return await self._request("personal_sign", [message, address])

    async def sign_typed_data(self, address: str, payload: str) -> str:
        return await self._request("eth_signTypedData_v4", [address, payload])

    async def send_transaction(self, fields: dict) -> str:
        """Submit a transaction; returns the transaction hash."""
        return await self._request("eth_sendTransaction", [fields])

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[dict]:
        return await self._request("eth_getTransactionReceipt", [tx_hash])

    async def wait_for_receipt(
        self,
        tx_hash: str,
        poll_interval: float = 2.0,
        timeout: Optional[float] = 300.0,
    ) -> Optional[dict]:
        """Poll for a transaction receipt.

        Returns:
            Receipt dict, or None if the timeout elapsed first
        """
        deadline = time.monotonic() + timeout if timeout else None
        while True:
            try:
                receipt = await self.get_transaction_receipt(tx_hash)
                if receipt:
                    return receipt
            except ProviderRejectedError as e:
                logger.debug(f"Receipt lookup for {tx_hash} failed: {e}")

            if deadline is not None and time.monotonic() >= deadline:
                logger.warning(f"Timed out waiting for receipt of {tx_hash}")
                return None
            await asyncio.sleep(poll_interval)

    async def revoke_permissions(self) -> None:
        await self._request("wallet_revokePermissions", [{"eth_accounts": {}}])

    def subscribe(
        self,
        on_accounts_changed: Callable[[list], Any],
        on_chain_changed: Callable[[Any], Any],
    ) -> Subscription:
        """Subscribe to account and chain change events."""
        return Subscription(
            self.provider,
            {
                "accountsChanged": on_accounts_changed,
                "chainChanged": on_chain_changed,
            },
        )
