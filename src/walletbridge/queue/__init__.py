"""Signing request queue: HTTP client and wire models."""

from walletbridge.queue.client import QueueClient
from walletbridge.queue.models import (
    ConnectionStatus,
    OutcomeRecord,
    PendingRequest,
    PendingSigning,
    PendingTransaction,
    SignType,
    TransactionFields,
)

__all__ = [
    "ConnectionStatus",
    "OutcomeRecord",
    "PendingRequest",
    "PendingSigning",
    "PendingTransaction",
    "QueueClient",
    "SignType",
    "TransactionFields",
]
