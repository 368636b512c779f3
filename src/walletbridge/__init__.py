"""walletbridge - connects wallet providers to a local signing request queue."""

__version__ = "0.1.0"
