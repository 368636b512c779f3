"""Provider registry.

Collects wallet providers announced on the bus into a stable, deduplicated
list. The set only grows for the lifetime of the registry.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Generic, Optional, TypeVar

from walletbridge.providers.base import ProviderDetail, WalletProvider
from walletbridge.providers.discovery import AnnouncementBus

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class ProviderRecord:
    """A discovered wallet provider."""

    id: str
    name: str
    rdns: str
    icon: str
    provider: WalletProvider

    @classmethod
    def from_detail(cls, detail: ProviderDetail) -> "ProviderRecord":
        return cls(
            id=detail.info.uuid,
            name=detail.info.name,
            rdns=detail.info.rdns,
            icon=detail.info.icon,
            provider=detail.provider,
        )

    def to_dict(self) -> dict:
        """Serializable view (without the provider handle)."""
        return {"id": self.id, "name": self.name, "rdns": self.rdns, "icon": self.icon}


class LazyHandle(Generic[T]):
    """Explicitly owned, lazily created singleton.

    The factory runs at most once, on the first ``get()``.
    """

    def __init__(self, factory: Callable[[], T]):
        self._factory = factory
        self._value: Optional[T] = None
        self._created = False

    @property
    def created(self) -> bool:
        return self._created

    def get(self) -> T:
        if not self._created:
            self._value = self._factory()
            self._created = True
        return self._value


class ProviderRegistry:
    """Deduplicated, insertion-ordered list of announced providers."""

    def __init__(
        self,
        bus: AnnouncementBus,
        embedded: Optional[LazyHandle] = None,
        on_change: Optional[Callable[[list[ProviderRecord]], None]] = None,
    ):
        """Subscribe to announcements and broadcast a discovery request.

        Args:
            bus: Announcement bus to discover providers on
            embedded: Handle to an embedded wallet; initialized here so that it
                announces itself on the bus
            on_change: Called with the full list whenever a provider is added
        """
        self._records: list[ProviderRecord] = []
        self._ids: set[str] = set()
        self._on_change = on_change

        if embedded is not None:
            embedded.get()

        self._unsubscribe: Optional[Callable[[], None]] = bus.subscribe(self._on_announce)
        bus.request_providers()

    def _on_announce(self, detail: ProviderDetail) -> None:
        uuid = detail.info.uuid
        if uuid in self._ids:
            return

        record = ProviderRecord.from_detail(detail)
        self._records.append(record)
        self._ids.add(uuid)
        logger.info(f"Discovered wallet provider {record.name} ({record.rdns}) id={uuid}")

        if self._on_change:
            self._on_change(self.list())

    def list(self) -> list[ProviderRecord]:
        """Known providers in announcement order."""
        return list(self._records)

    def get(self, provider_id: str) -> Optional[ProviderRecord]:
        for record in self._records:
            if record.id == provider_id:
                return record
        return None

    def close(self) -> None:
        """Stop listening for announcements."""
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

    def __len__(self) -> int:
        return len(self._records)
