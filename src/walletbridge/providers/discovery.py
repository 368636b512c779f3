"""In-process EIP-6963 style provider announcement bus.

Providers are served on the bus: they announce themselves as soon as they are
served and again every time a discovery request is dispatched.
"""

import logging
from typing import Callable

from walletbridge.providers.base import ProviderDetail

logger = logging.getLogger(__name__)

AnnounceListener = Callable[[ProviderDetail], None]


class AnnouncementBus:
    """Dispatches ``requestProvider`` / ``announceProvider`` events."""

    def __init__(self):
        self._listeners: list[AnnounceListener] = []
        self._served: list[ProviderDetail] = []

    def subscribe(self, listener: AnnounceListener) -> Callable[[], None]:
        """Listen for announcements.

        Returns:
            Function that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def announce(self, detail: ProviderDetail) -> None:
        """Broadcast a provider announcement."""
        for listener in list(self._listeners):
            try:
                listener(detail)
            except Exception as e:
                logger.error(f"Announcement listener error for {detail.info.name}: {e}")

    def serve(self, detail: ProviderDetail) -> None:
        """Register a provider that answers discovery requests."""
        self._served.append(detail)
        logger.info(f"Serving wallet provider {detail.info.name} ({detail.info.rdns})")
        self.announce(detail)

    def request_providers(self) -> None:
        """Ask every served provider to announce itself."""
        for detail in list(self._served):
            self.announce(detail)
