"""Wallet providers: interface, discovery and implementations."""

from walletbridge.providers.base import ProviderDetail, ProviderInfo, WalletProvider
from walletbridge.providers.discovery import AnnouncementBus
from walletbridge.providers.registry import LazyHandle, ProviderRecord, ProviderRegistry
from walletbridge.providers.wallet import Subscription, Wallet

__all__ = [
    "AnnouncementBus",
    "LazyHandle",
    "ProviderDetail",
    "ProviderInfo",
    "ProviderRecord",
    "ProviderRegistry",
    "Subscription",
    "Wallet",
    "WalletProvider",
]
