"""Request executor.

Drives the wallet through one staged pending request and reports the
outcome to the queue:

- Signing: personal_sign or eth_signTypedData_v4, then push the signature
- Transaction: chain switch if needed, sender check, submit, push the hash,
  then wait for the receipt in the background

Each request id is answered at most once. After every push the
reconciliation loop is asked to re-poll immediately.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from walletbridge.errors import (
    BridgeError,
    ChainMismatchError,
    ProviderRejectedError,
    SenderMismatchError,
    SessionError,
    describe_error,
)
from walletbridge.providers.wallet import Wallet
from walletbridge.queue.client import QueueClient
from walletbridge.queue.models import (
    OutcomeRecord,
    PendingRequest,
    PendingSigning,
    PendingTransaction,
    SignType,
)
from walletbridge.reconcile import ReconciliationLoop
from walletbridge.session import Session

logger = logging.getLogger(__name__)


class RequestExecutor:
    """Executes the staged request against the selected wallet."""

    def __init__(
        self,
        session: Session,
        queue: QueueClient,
        loop: Optional[ReconciliationLoop] = None,
        receipt_poll_interval: float = 2.0,
        receipt_timeout: Optional[float] = 300.0,
    ):
        self.session = session
        self.queue = queue
        self.loop = loop
        self.receipt_poll_interval = receipt_poll_interval
        self.receipt_timeout = receipt_timeout
        self.receipt_task: Optional[asyncio.Task] = None
        self._receipt_tasks: set[asyncio.Task] = set()

    async def execute(self) -> OutcomeRecord:
        """Handle whatever request is staged."""
        request = self._require_staged()
        if isinstance(request, PendingTransaction):
            return await self._run(request, self._send_transaction)
        elif isinstance(request, PendingSigning):
            return await self._run(request, self._sign_message)
        else:
            raise TypeError(f"Unsupported pending request: {request!r}")

    async def sign(self) -> OutcomeRecord:
        """Sign the staged signing request."""
        request = self._require_staged()
        if not isinstance(request, PendingSigning):
            raise SessionError(f"Staged request {request.id} is not a signing request")
        return await self._run(request, self._sign_message)

    async def send(self) -> OutcomeRecord:
        """Submit the staged transaction."""
        request = self._require_staged()
        if not isinstance(request, PendingTransaction):
            raise SessionError(f"Staged request {request.id} is not a transaction")
        return await self._run(request, self._send_transaction)

    def _require_staged(self) -> PendingRequest:
        slot = self.session.slot
        if slot.staged is None:
            raise SessionError("No pending request")
        if slot.executing:
            raise SessionError(f"Request {slot.staged.id} is already being handled")
        if slot.staged.id in slot.answered:
            raise SessionError(f"Request {slot.staged.id} was already answered")
        if self.session.wallet is None:
            raise SessionError("No wallet provider selected")
        return slot.staged

    async def _run(
        self,
        request: PendingRequest,
        handler: Callable[[Wallet, PendingRequest], Awaitable[OutcomeRecord]],
    ) -> OutcomeRecord:
        session = self.session
        slot = session.slot
        wallet = session.wallet
        generation = session.generation

        slot.executing = True
        try:
            outcome = await handler(wallet, request)
        finally:
            slot.executing = False

        if generation != session.generation:
            logger.info(f"Provider changed while handling {request.id}; discarding outcome")
            return outcome

        slot.answered.add(request.id)
        await self._push(outcome)
        slot.release(request)
        slot.outcome = outcome

        if outcome.hash and outcome.error is None:
            self.receipt_task = asyncio.create_task(
                self._await_receipt(wallet, outcome, generation)
            )
            self._receipt_tasks.add(self.receipt_task)
            self.receipt_task.add_done_callback(self._receipt_tasks.discard)

        if self.loop is not None:
            self.loop.poll_now()
        return outcome

    async def _push(self, outcome: OutcomeRecord) -> None:
        try:
            await self.queue.respond(outcome)
            outcome.pushed = True
        except BridgeError as e:
            logger.error(f"Failed to push response for {outcome.request_id}: {e}")

    async def _sign_message(self, wallet: Wallet, request: PendingSigning) -> OutcomeRecord:
        try:
            if request.sign_type == SignType.PERSONAL_SIGN:
                signature = await wallet.personal_sign(request.message, request.address)
            elif request.sign_type == SignType.SIGN_TYPED_DATA_V4:
                signature = await wallet.sign_typed_data(request.address, request.message)
            else:
                raise TypeError(f"Unsupported sign type {request.sign_type}")
        except Exception as e:
            logger.error(f"Signing request {request.id} failed: {e}")
            return OutcomeRecord(request_id=request.id, kind="signing", error=describe_error(e))

        logger.info(f"Signed request {request.id}")
        return OutcomeRecord(request_id=request.id, kind="signing", signature=signature)

    async def _send_transaction(self, wallet: Wallet, request: PendingTransaction) -> OutcomeRecord:
        session = self.session
        try:
            want = request.chain_id if request.chain_id is not None else session.state.chain_id
            await session.resolver.ensure_selected(wallet, want, session.state.chain_id)

            # The switch may have moved the wallet; read back where it is now.
            session.apply_chain_id(await wallet.get_chain_id())
            have = session.state.chain_id
            if want is not None and have != want:
                raise ChainMismatchError(want, have)

            account = session.state.account
            declared = request.request.sender
            if declared and account and declared.lower() != account.lower():
                raise SenderMismatchError(declared, account)

            params = request.request.to_rpc_params(sender=account, chain_id=have)
            tx_hash = await wallet.send_transaction(params)
        except Exception as e:
            logger.error(f"Transaction request {request.id} failed: {e}")
            return OutcomeRecord(request_id=request.id, kind="transaction", error=describe_error(e))

        logger.info(f"Broadcast transaction {tx_hash} for request {request.id}")
        return OutcomeRecord(request_id=request.id, kind="transaction", hash=tx_hash)

    async def _await_receipt(self, wallet: Wallet, outcome: OutcomeRecord, generation: int) -> None:
        try:
            receipt = await wallet.wait_for_receipt(
                outcome.hash,
                poll_interval=self.receipt_poll_interval,
                timeout=self.receipt_timeout,
            )
        except ProviderRejectedError as e:
            logger.warning(f"Receipt wait for {outcome.hash} failed: {e}")
            return

        if receipt is None:
            return
        if generation != self.session.generation or self.session.slot.outcome is not outcome:
            return

        self.session.slot.receipt = receipt
        logger.info(f"Transaction {outcome.hash} mined in block {receipt.get('blockNumber')}")

    @property
    def pending_receipts(self) -> int:
        """Number of receipt waits still running."""
        return len(self._receipt_tasks)

    async def close(self) -> None:
        """Cancel all pending receipt waits."""
        tasks = list(self._receipt_tasks)
        self._receipt_tasks.clear()
        self.receipt_task = None
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
