"""Simulated wallet provider for dry-run mode and testing.

No keys, no network. Signatures and transaction hashes are deterministic
placeholders derived from the request contents.
"""

import hashlib
import json
import logging
import uuid
from typing import Any, Optional

from walletbridge.chains import parse_chain_id, to_hex_chain_id
from walletbridge.errors import (
    UNRECOGNIZED_CHAIN,
    UNSUPPORTED_METHOD,
    USER_REJECTED,
    ProviderRpcError,
)
from walletbridge.providers.base import Params, ProviderDetail, ProviderInfo, WalletProvider

logger = logging.getLogger(__name__)

DEFAULT_ACCOUNT = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"


class SimulatedProvider(WalletProvider):
    """In-memory wallet that approves everything unless told otherwise.

    Every request is recorded in ``calls`` as ``(method, params)``.
    """

    def __init__(
        self,
        accounts: Optional[list[str]] = None,
        chain_id: int = 1,
        known_chains: Optional[set[int]] = None,
        receipt_after: int = 1,
    ):
        """Initialize the simulated wallet.

        Args:
            accounts: Accounts exposed on eth_requestAccounts
            chain_id: Initially selected chain
            known_chains: Chains the wallet can switch to without registration
            receipt_after: Number of receipt lookups that return None before
                a receipt is available
        """
        super().__init__()
        self.accounts = list(accounts) if accounts is not None else [DEFAULT_ACCOUNT]
        self.chain_id = chain_id
        self.known_chains = set(known_chains) if known_chains is not None else {chain_id}
        self.known_chains.add(chain_id)
        self.receipt_after = receipt_after
        self.authorized = False
        self.calls: list[tuple[str, Any]] = []
        self.rejected_methods: set[str] = set()
        self.added_chains: list[dict] = []
        self.sent_transactions: list[dict] = []
        self._receipt_lookups: dict[str, int] = {}
        self._block_number = 1

    def calls_to(self, method: str) -> list[Any]:
        """Params of every recorded call to ``method``."""
        return [params for name, params in self.calls if name == method]

    def reject(self, *methods: str) -> None:
        """Make the given methods fail as if the user declined them."""
        self.rejected_methods.update(methods)

    # ------------------------------------------------------------------
    # Wallet-side state changes (pushed as events)
    # ------------------------------------------------------------------

    def set_accounts(self, accounts: list[str]) -> None:
        self.accounts = list(accounts)
        self.emit("accountsChanged", list(accounts))

    def set_chain(self, chain_id: int) -> None:
        self.known_chains.add(chain_id)
        self.chain_id = chain_id
        self.emit("chainChanged", to_hex_chain_id(chain_id))

    # ------------------------------------------------------------------
    # EIP-1193
    # ------------------------------------------------------------------

    async def request(self, method: str, params: Params = None) -> Any:
        self.calls.append((method, params))

        if method in self.rejected_methods:
            raise ProviderRpcError("User rejected the request.", code=USER_REJECTED)

        handler = getattr(self, "_" + method, None)
        if handler is None:
            raise ProviderRpcError(f"Method {method} not supported", code=UNSUPPORTED_METHOD)
        return handler(params or [])

    def _eth_requestAccounts(self, params: list) -> list[str]:
        self.authorized = True
        return list(self.accounts)

    def _eth_accounts(self, params: list) -> list[str]:
        return list(self.accounts) if self.authorized else []

    def _eth_chainId(self, params: list) -> str:
        return to_hex_chain_id(self.chain_id)

    def _wallet_switchEthereumChain(self, params: list) -> None:
        chain_id = parse_chain_id(params[0]["chainId"])
        if chain_id not in self.known_chains:
            raise ProviderRpcError(
                f"Unrecognized chain ID {params[0]['chainId']}", code=UNRECOGNIZED_CHAIN
            )
        if chain_id != self.chain_id:
            self.set_chain(chain_id)

    def _wallet_addEthereumChain(self, params: list) -> None:
        self.added_chains.append(params[0])
        self.known_chains.add(parse_chain_id(params[0]["chainId"]))

    def _wallet_revokePermissions(self, params: list) -> None:
        self.authorized = False

    def _personal_sign(self, params: list) -> str:
        message, address = params
        return self._fake_signature("personal_sign", address, message)

    def _eth_signTypedData_v4(self, params: list) -> str:
        address, payload = params
        return self._fake_signature("typed", address, payload)

    def _eth_sendTransaction(self, params: list) -> str:
        tx = dict(params[0])
        self.sent_transactions.append(tx)
        tx_hash = "0x" + hashlib.sha256(
            json.dumps([self.chain_id, len(self.sent_transactions), tx], sort_keys=True).encode()
        ).hexdigest()
        self._receipt_lookups[tx_hash] = 0
        return tx_hash

    def _eth_getTransactionReceipt(self, params: list) -> Optional[dict]:
        tx_hash = params[0]
        if tx_hash not in self._receipt_lookups:
            return None

        self._receipt_lookups[tx_hash] += 1
        if self._receipt_lookups[tx_hash] <= self.receipt_after:
            return None

        self._block_number += 1
        return {
            "transactionHash": tx_hash,
            "blockNumber": hex(self._block_number),
            "status": "0x1",
        }

    @staticmethod
    def _fake_signature(kind: str, address: str, payload: Any) -> str:
        digest = hashlib.sha512(f"{kind}:{address.lower()}:{payload}".encode()).hexdigest()
        return "0x" + digest[:128] + "1b"


def simulated_detail(provider: Optional[SimulatedProvider] = None) -> ProviderDetail:
    """Wrap a simulated provider in an announcement payload."""
    return ProviderDetail(
        info=ProviderInfo(
            uuid=str(uuid.uuid4()),
            name="Simulated Wallet",
            icon="",
            rdns="dev.walletbridge.simulated",
        ),
        provider=provider or SimulatedProvider(),
    )
