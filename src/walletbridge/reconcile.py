"""Reconciliation loop.

Each tick:
1. Connection sync: make the queue's view of the attached account/chain
   match the local session.
2. Pending fetch: once confirmed and only while nothing is staged, fetch
   the next pending item and stage it. While a request is staged its own
   queue is polled just to notice the queue dropping it.

Sync always runs before fetch in the same tick, so a freshly confirmed
session reaches the queue before any request for it is fetched. Errors are
logged and swallowed per tick; the loop keeps ticking.
"""

import asyncio
import logging
from typing import Optional

from walletbridge.queue.client import QueueClient
from walletbridge.session import Session

logger = logging.getLogger(__name__)


class ReconciliationLoop:
    """Fixed-interval poller between the session and the request queue."""

    def __init__(self, session: Session, queue: QueueClient, interval: float = 1.0):
        """Initialize the loop.

        Args:
            session: Session whose state is reconciled
            queue: Request queue client
            interval: Seconds between ticks
        """
        self.session = session
        self.queue = queue
        self.interval = interval
        self._task: Optional[asyncio.Task] = None
        self._wake = asyncio.Event()
        self._running = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def sync_connection(self) -> None:
        """Push connect/disconnect so the queue matches the local session.

        A connected but unconfirmed session counts as detached: the queue is
        only told about an account/chain after the user confirmed it.
        """
        remote = await self.queue.get_connection()
        state = self.session.state

        if not state.is_attached:
            if remote.connected:
                logger.info("Queue reports a connection the session does not have; clearing")
                await self.queue.clear_connection()
            return

        if not remote.matches(state.account, state.chain_id):
            logger.info(
                f"Queue connection {remote.account}@{remote.chain_id} is stale; "
                f"pushing {state.account}@{state.chain_id}"
            )
            await self.queue.set_connection(state.account, state.chain_id)

    async def fetch_pending(self) -> None:
        """Fetch and stage the next pending request."""
        session = self.session
        if not session.state.confirmed or session.slot.executing:
            return

        generation = session.generation
        staged = session.slot.staged
        if staged is not None:
            # Only check whether the staged request is still pending
            item = await self.queue.next_of_kind(staged.kind)
        else:
            item = await self.queue.next_request()

        slot = session.slot
        if generation != session.generation or slot.executing:
            # Provider switched or the executor took the slot while fetching
            return

        if staged is not None:
            if slot.staged is staged and item is None:
                logger.info(f"Request {staged.id} no longer pending; clearing")
                slot.clear()
            return

        if item is None:
            if slot.last_seen_id is not None:
                logger.info(f"Request {slot.last_seen_id} no longer pending; clearing")
                slot.clear()
            return

        if item.id == slot.last_seen_id:
            return

        if item.id in slot.answered:
            logger.debug(f"Request {item.id} already answered; waiting for queue to drop it")
            return

        logger.info(f"Staged {item.kind} request {item.id}")
        slot.stage(item)

    async def tick(self) -> None:
        """Run one reconciliation round. Never raises."""
        try:
            await self.sync_connection()
            await self.fetch_pending()
        except Exception as e:
            logger.warning(f"Reconciliation tick failed: {e}")

    async def run(self) -> None:
        """Tick until stopped."""
        self._running = True
        logger.info(f"Starting reconciliation loop (interval: {self.interval}s)")

        while self._running:
            self._wake.clear()
            await self.tick()
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass

    def poll_now(self) -> None:
        """Wake the loop for an immediate tick."""
        self._wake.set()

    def start(self) -> None:
        """Start ticking in a background task."""
        if self.running:
            return
        self._task = asyncio.create_task(self.run())

    async def stop(self) -> None:
        """Stop the loop and wait for the task to finish."""
        self._running = False
        task, self._task = self._task, None
        if task is None:
            return

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Reconciliation loop stopped")
