"""Bridge host.

Owns the provider registry, session, queue client, reconciliation loop and
request executor. Exposes read-only snapshots and the user actions.
"""

import asyncio
import logging
from typing import Optional

from walletbridge.chains import ChainResolver
from walletbridge.config import Settings, get_settings
from walletbridge.errors import SessionError
from walletbridge.executor import RequestExecutor
from walletbridge.providers.discovery import AnnouncementBus
from walletbridge.providers.registry import LazyHandle, ProviderRecord, ProviderRegistry
from walletbridge.queue.client import QueueClient
from walletbridge.queue.models import OutcomeRecord
from walletbridge.reconcile import ReconciliationLoop
from walletbridge.session import Session

logger = logging.getLogger(__name__)


class WalletBridge:
    """Connects a wallet provider to the signing request queue."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        bus: Optional[AnnouncementBus] = None,
        queue: Optional[QueueClient] = None,
        embedded: Optional[LazyHandle] = None,
        resolver: Optional[ChainResolver] = None,
    ):
        self.settings = settings or get_settings()
        self.bus = bus or AnnouncementBus()
        self.queue = queue or QueueClient(
            self.settings.queue_base,
            session_token=self.settings.session_token,
            timeout=self.settings.http_timeout,
        )
        self.session = Session(self.queue, resolver or ChainResolver())
        self.loop = ReconciliationLoop(self.session, self.queue, self.settings.poll_interval)
        self.executor = RequestExecutor(
            self.session,
            self.queue,
            loop=self.loop,
            receipt_poll_interval=self.settings.receipt_poll_interval,
            receipt_timeout=self.settings.receipt_timeout,
        )
        self._started = False
        self._select_tasks: set[asyncio.Task] = set()
        self.registry = ProviderRegistry(self.bus, embedded=embedded, on_change=self._on_providers)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Auto-select a lone provider and start polling."""
        self._started = True
        await self.auto_select()
        self.loop.start()

    async def close(self) -> None:
        """Stop polling and release resources."""
        self._started = False
        tasks = list(self._select_tasks)
        self._select_tasks.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await self.loop.stop()
        await self.executor.close()
        self.session.close()
        self.registry.close()
        await self.queue.close()

    def _on_providers(self, records: list[ProviderRecord]) -> None:
        if not self._started:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = loop.create_task(self.auto_select())
        self._select_tasks.add(task)
        task.add_done_callback(self._select_tasks.discard)

    @property
    def pending_selects(self) -> int:
        """Number of scheduled auto-select tasks still running."""
        return len(self._select_tasks)

    async def auto_select(self) -> None:
        """Select the provider when exactly one is known and none is selected."""
        providers = self.registry.list()
        if len(providers) == 1 and self.session.state.selected_provider_id is None:
            await self.select_provider(providers[0].id)

    async def select_provider(self, provider_id: Optional[str]) -> None:
        """Switch providers: stop polling, reset the session, resume polling.

        Raises:
            SessionError: If the provider id is unknown
        """
        record = None
        if provider_id is not None:
            record = self.registry.get(provider_id)
            if record is None:
                raise SessionError(f"Unknown provider {provider_id}")

        if self.session.state.selected_provider_id == provider_id:
            return

        await self.loop.stop()
        await self.executor.close()
        await self.session.select(record)
        if self._started:
            self.loop.start()

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    async def connect(self) -> Optional[str]:
        return await self.session.connect()

    async def confirm(self) -> None:
        await self.session.confirm()
        self.loop.poll_now()

    async def disconnect(self) -> None:
        await self.session.disconnect()
        self.loop.poll_now()

    async def sign(self) -> OutcomeRecord:
        return await self.executor.sign()

    async def send_signed(self) -> OutcomeRecord:
        return await self.executor.send()

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def snapshot(self) -> dict:
        """Read-only view of providers, session, staged request and results."""
        slot = self.session.slot
        return {
            "providers": [record.to_dict() for record in self.registry.list()],
            "session": self.session.state.to_dict(),
            "staged": slot.staged.model_dump(mode="json", exclude={"raw"}) if slot.staged else None,
            "executing": slot.executing,
            "outcome": slot.outcome.model_dump(mode="json") if slot.outcome else None,
            "receipt": slot.receipt,
            "polling": self.loop.running,
        }
