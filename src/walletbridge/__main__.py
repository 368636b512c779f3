"""Allow running as ``python -m walletbridge``."""

from walletbridge.main import cli

if __name__ == "__main__":
    cli()
