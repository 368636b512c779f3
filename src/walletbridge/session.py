"""Session state and the connect/confirm/disconnect lifecycle.

States: Disconnected -> Connected(account, chain) -> Confirmed.

Once confirmed, the queue holds the account/chain the remote side is
building requests for; wallet-pushed account or chain changes are ignored
from then on so nothing handed to the queue is retargeted mid-flight.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from walletbridge.chains import ChainMeta, ChainResolver, parse_chain_id
from walletbridge.errors import BridgeError, ProviderRejectedError, SessionError
from walletbridge.providers.registry import ProviderRecord
from walletbridge.providers.wallet import Subscription, Wallet
from walletbridge.queue.client import QueueClient
from walletbridge.queue.models import OutcomeRecord, PendingRequest

logger = logging.getLogger(__name__)


@dataclass
class SessionState:
    """Active provider selection, account and chain."""

    selected_provider_id: Optional[str] = None
    account: Optional[str] = None
    chain_id: Optional[int] = None
    chain: Optional[ChainMeta] = None
    confirmed: bool = False

    @property
    def is_connected(self) -> bool:
        return bool(self.account) and self.chain_id is not None

    @property
    def is_attached(self) -> bool:
        """Whether the queue may treat this session as attached."""
        return self.confirmed and self.is_connected

    def to_dict(self) -> dict:
        return {
            "selected_provider_id": self.selected_provider_id,
            "account": self.account,
            "chain_id": self.chain_id,
            "chain": self.chain.to_dict() if self.chain else None,
            "confirmed": self.confirmed,
        }


@dataclass
class RequestSlot:
    """The single staged pending request and its results.

    ``last_seen_id`` outlives the staged request so a request the queue keeps
    reporting after it was answered is not staged twice.
    """

    staged: Optional[PendingRequest] = None
    last_seen_id: Optional[str] = None
    executing: bool = False
    outcome: Optional[OutcomeRecord] = None
    receipt: Optional[dict] = None
    answered: set[str] = field(default_factory=set)

    def stage(self, request: PendingRequest) -> None:
        """Stage a new request, dropping results of the previous one."""
        self.staged = request
        self.last_seen_id = request.id
        self.outcome = None
        self.receipt = None

    def clear(self) -> None:
        self.staged = None
        self.last_seen_id = None

    def release(self, request: PendingRequest) -> None:
        """Drop ``request`` after its outcome has been pushed."""
        if self.staged is not None and self.staged.id == request.id:
            self.staged = None


class Session:
    """Owns the session state, the wallet handle and its event subscription."""

    def __init__(self, queue: QueueClient, resolver: Optional[ChainResolver] = None):
        self.queue = queue
        self.resolver = resolver or ChainResolver()
        self.state = SessionState()
        self.slot = RequestSlot()
        self.record: Optional[ProviderRecord] = None
        self.wallet: Optional[Wallet] = None
        self.generation = 0
        self._subscription: Optional[Subscription] = None

    # ------------------------------------------------------------------
    # Provider selection
    # ------------------------------------------------------------------

    async def select(self, record: Optional[ProviderRecord]) -> None:
        """Switch to a different wallet provider.

        Resets all state, discards any staged request without answering it
        and tells the queue the session is disconnected (best-effort).
        """
        new_id = record.id if record else None
        if new_id == self.state.selected_provider_id:
            return

        self._unsubscribe()
        self.generation += 1
        self.state = SessionState(selected_provider_id=new_id)
        self.slot = RequestSlot()
        self.record = record
        self.wallet = Wallet(record.provider) if record else None

        try:
            await self.queue.clear_connection()
        except BridgeError as e:
            logger.warning(f"Could not push disconnect on provider switch: {e}")

        if self.wallet is None:
            logger.info("Provider selection cleared")
            return

        logger.info(f"Selected wallet provider {record.name} ({record.id})")
        self._subscription = self.wallet.subscribe(
            self._on_accounts_changed, self._on_chain_changed
        )
        await self.refresh()

    def _unsubscribe(self) -> None:
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None

    async def refresh(self) -> None:
        """Read chain and already-exposed accounts without prompting the user."""
        wallet = self._require_wallet()
        generation = self.generation

        try:
            chain_id = await wallet.get_chain_id()
        except ProviderRejectedError as e:
            logger.debug(f"eth_chainId failed: {e}")
            chain_id = None
        if generation != self.generation:
            return
        self.apply_chain_id(chain_id)

        try:
            accounts = await wallet.get_accounts()
        except ProviderRejectedError as e:
            logger.debug(f"eth_accounts failed: {e}")
            accounts = []
        if generation != self.generation:
            return
        self.state.account = accounts[0] if accounts else None

    # ------------------------------------------------------------------
    # Lifecycle actions
    # ------------------------------------------------------------------

    async def connect(self) -> Optional[str]:
        """Request accounts from the wallet.

        Returns:
            The connected account, or None if the wallet exposed none

        Raises:
            SessionError: If no provider is selected
            ProviderRejectedError: If the wallet rejects the request
        """
        wallet = self._require_wallet()
        generation = self.generation

        accounts = await wallet.request_accounts()
        if generation != self.generation:
            raise SessionError("Provider changed while connecting")
        self.state.account = accounts[0] if accounts else None

        try:
            chain_id = await wallet.get_chain_id()
        except ProviderRejectedError as e:
            logger.warning(f"Could not read chain id after connect: {e}")
        else:
            if generation == self.generation:
                self.apply_chain_id(chain_id)

        logger.info(f"Connected account {self.state.account} on chain {self.state.chain_id}")
        return self.state.account

    async def confirm(self) -> None:
        """Attach the current account/chain to the queue.

        Raises:
            SessionError: If there is no account or no known chain
            NetworkTransientError: If the queue could not be reached; the
                session stays unconfirmed
        """
        account = self.state.account
        chain_id = self.state.chain_id
        if not account:
            raise SessionError("No account connected")
        if chain_id is None:
            raise SessionError("Chain id unknown")

        await self.queue.set_connection(account, chain_id)
        self.state.confirmed = True
        logger.info(f"Confirmed session {account} on chain {chain_id}")

    async def disconnect(self) -> None:
        """Drop the account and confirmation; revoke wallet permissions (best-effort)."""
        wallet = self._require_wallet()
        self.state.account = None
        self.state.confirmed = False
        self.slot = RequestSlot()

        try:
            await wallet.revoke_permissions()
        except ProviderRejectedError as e:
            logger.debug(f"wallet_revokePermissions failed: {e}")

        try:
            await self.queue.clear_connection()
        except BridgeError as e:
            logger.warning(f"Could not push disconnect: {e}")
        logger.info("Disconnected")

    def close(self) -> None:
        self._unsubscribe()

    # ------------------------------------------------------------------
    # State updates
    # ------------------------------------------------------------------

    def apply_chain_id(self, raw: Any) -> None:
        """Set chain id and metadata from a raw chain id value."""
        chain_id = parse_chain_id(raw)
        self.state.chain_id = chain_id
        self.state.chain = self.resolver.resolve(chain_id)

    def _on_accounts_changed(self, accounts: list) -> None:
        if self.state.confirmed:
            logger.debug("Ignoring accountsChanged on confirmed session")
            return
        self.state.account = accounts[0] if accounts else None
        logger.info(f"Wallet account changed to {self.state.account}")

    def _on_chain_changed(self, raw: Any) -> None:
        if self.state.confirmed:
            logger.debug("Ignoring chainChanged on confirmed session")
            return
        self.apply_chain_id(raw)
        logger.info(f"Wallet chain changed to {self.state.chain_id}")

    def _require_wallet(self) -> Wallet:
        if self.wallet is None:
            raise SessionError("No wallet provider selected")
        return self.wallet
