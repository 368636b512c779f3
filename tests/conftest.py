"""Pytest configuration and fixtures."""

import os

import pytest
import pytest_asyncio

# Set test environment
os.environ["ENVIRONMENT"] = "test"
os.environ["DEBUG"] = "true"
os.environ["DRY_RUN"] = "false"
os.environ["RPC_URLS"] = ""

from helpers import ACCOUNT, FakeQueue, detail_for
from walletbridge.bridge import WalletBridge
from walletbridge.config import Settings
from walletbridge.providers.discovery import AnnouncementBus
from walletbridge.providers.registry import ProviderRecord
from walletbridge.providers.simulated import SimulatedProvider
from walletbridge.session import Session


@pytest.fixture
def fake_queue() -> FakeQueue:
    """In-memory request queue server."""
    return FakeQueue()


@pytest_asyncio.fixture
async def queue_client(fake_queue):
    """Queue client talking to the fake queue over ASGI."""
    client = fake_queue.client()
    yield client
    await client.close()


@pytest.fixture
def provider() -> SimulatedProvider:
    """Simulated wallet on mainnet with one account."""
    return SimulatedProvider(accounts=[ACCOUNT], chain_id=1, receipt_after=1)


@pytest.fixture
def record(provider) -> ProviderRecord:
    return ProviderRecord.from_detail(detail_for(provider, "wallet-1"))


@pytest.fixture
def settings() -> Settings:
    """Fast intervals so loop tests finish quickly."""
    return Settings(
        poll_interval=0.02,
        receipt_poll_interval=0.01,
        receipt_timeout=2.0,
        http_timeout=5.0,
    )


@pytest_asyncio.fixture
async def session(queue_client, record) -> Session:
    """Session with the simulated wallet selected."""
    session = Session(queue_client)
    await session.select(record)
    return session


@pytest_asyncio.fixture
async def confirmed_session(session) -> Session:
    """Session connected and confirmed on chain 1."""
    await session.connect()
    await session.confirm()
    return session


@pytest_asyncio.fixture
async def bridge(settings, fake_queue, queue_client, provider):
    """Bridge with a single simulated wallet announced on the bus."""
    bus = AnnouncementBus()
    bus.serve(detail_for(provider, "wallet-1"))
    bridge = WalletBridge(settings=settings, bus=bus, queue=queue_client)
    yield bridge
    await bridge.close()
