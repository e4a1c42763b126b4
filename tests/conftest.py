"""Pytest configuration and shared fixtures for all tests."""

import os
import sys
from pathlib import Path

# Minimal environment for Settings()
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("LOG_FILE", "")
os.environ.setdefault("COINGECKO_API_KEY", "")

# Add project root to PYTHONPATH
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from unittest.mock import AsyncMock, MagicMock  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from tvl.config.constants import HOUR  # noqa: E402
from tvl.config.projects import (  # noqa: E402
    NativeAmountConfig,
    PremintedAmountConfig,
    TokenAmountConfig,
)
from tvl.models import Base  # noqa: E402
from tvl.repositories.record_store import RecordStore  # noqa: E402
from tvl.services.chain.rpc_client import BlockHeader  # noqa: E402
from tvl.services.indexers.base import IDLE, Indexer  # noqa: E402
from tvl.services.indexers.indexer_service import IndexerService  # noqa: E402

TOKEN = "0x" + "11" * 20
HOLDER = "0x" + "22" * 20
ESCROW = "0x" + "33" * 20


def h(n: int) -> int:
    """Timestamp of the n-th hour."""
    return n * HOUR


class StaticIndexer(Indexer):
    """Parent stub with a cursor set by the test."""

    def __init__(self, indexer_id: str, safe_height: int | None, parents=None) -> None:
        super().__init__(indexer_id, parents=parents)
        self.safe_height = safe_height
        self.initialized = False
        self.ticks = 0

    async def initialize(self) -> None:
        self.initialized = True

    async def tick(self) -> bool:
        self.ticks += 1
        self.state = IDLE
        return False


@pytest_asyncio.fixture
async def store():
    """RecordStore over in-memory SQLite."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield RecordStore(async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False))

    await engine.dispose()


@pytest.fixture
def indexer_service(store):
    return IndexerService(store)


@pytest.fixture
def token_config():
    """Canonically bridged token position on ethereum."""
    return TokenAmountConfig(
        project="bridge",
        chain="ethereum",
        token=TOKEN,
        holder=ESCROW,
        since_timestamp=h(100),
        price_id="usdc",
        decimals=0,
    )


@pytest.fixture
def native_config():
    return NativeAmountConfig(
        project="bridge",
        chain="ethereum",
        holder=HOLDER,
        since_timestamp=h(100),
        price_id="eth",
        decimals=18,
    )


@pytest.fixture
def preminted_config():
    return PremintedAmountConfig(
        project="rollup",
        chain="ethereum",
        token=TOKEN,
        holder=ESCROW,
        since_timestamp=h(100),
        price_id="gov",
        decimals=18,
        source="native",
    )


@pytest.fixture
def mock_amount_service():
    """AmountService returning 1000 for every hour."""
    service = AsyncMock()
    service.resolve_amount = AsyncMock(return_value=1000)
    return service


@pytest.fixture
def mock_rpc_client():
    client = MagicMock()
    client.chain = "ethereum"
    client.rate_limiter = None
    client.eth_call = AsyncMock()
    client.get_balance = AsyncMock()
    client.get_block_number_at_or_before = AsyncMock()
    client.get_block = AsyncMock(return_value=BlockHeader(number=0, timestamp=0))
    return client


@pytest.fixture
def make_parent():
    """Factory for parent stubs with a fixed cursor."""
    def factory(indexer_id: str, safe_height: int | None) -> StaticIndexer:
        return StaticIndexer(indexer_id, safe_height)
    return factory
