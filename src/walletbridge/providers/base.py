"""Wallet provider base interface.

A provider follows the EIP-1193 shape: a single ``request`` coroutine plus
``on``/``remove_listener`` for pushed events (``accountsChanged``,
``chainChanged``, ``connect``, ``disconnect``).
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Optional, Union

logger = logging.getLogger(__name__)

Params = Optional[Union[list, dict]]
Listener = Callable[..., Any]


@dataclass(frozen=True)
class ProviderInfo:
    """EIP-6963 provider metadata."""

    uuid: str
    name: str
    icon: str = ""
    rdns: str = ""


class WalletProvider(ABC):
    """Abstract base class for wallet providers."""

    def __init__(self):
        self._listeners: dict[str, list[Listener]] = {}

    @abstractmethod
    async def request(self, method: str, params: Params = None) -> Any:
        """Send a JSON-RPC style request to the wallet.

        Args:
            method: RPC method name (eth_chainId, eth_sendTransaction, ...)
            params: Positional or named parameters

        Returns:
            Method result

        Raises:
            ProviderRpcError: If the wallet rejects the request
        """
        raise NotImplementedError()

    def on(self, event: str, listener: Listener) -> None:
        """Register a listener for a pushed event."""
        self._listeners.setdefault(event, []).append(listener)

    def remove_listener(self, event: str, listener: Listener) -> None:
        """Remove a previously registered listener."""
        listeners = self._listeners.get(event, [])
        if listener in listeners:
            listeners.remove(listener)

    def listener_count(self, event: str) -> int:
        """Number of listeners registered for an event."""
        return len(self._listeners.get(event, []))

    def emit(self, event: str, *args: Any) -> None:
        """Deliver an event to all registered listeners."""
        for listener in list(self._listeners.get(event, [])):
            try:
                listener(*args)
            except Exception as e:
                logger.error(f"Listener error for {event}: {e}")

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


@dataclass(frozen=True)
class ProviderDetail:
    """Announcement payload: provider metadata plus the provider itself."""

    info: ProviderInfo
    provider: WalletProvider
