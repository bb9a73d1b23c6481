from collections.abc import AsyncGenerator

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import settlement.models  # noqa: F401 (registers tables on Base.metadata)
from settlement.db.base import Base
from settlement.services.clock import ManualClock
from settlement.services.ledger.memory import InMemoryLedger
from settlement.services.policy import AdminPolicy
from settlement.services.settlement import SettlementEngine


@pytest.fixture
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """A fresh SQLite database file per test, schema created from the models."""
    db_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'settlement.db'}")
    async with db_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(bind=db_engine, class_=AsyncSession, expire_on_commit=False)
    await db_engine.dispose()


@pytest.fixture
def policy() -> AdminPolicy:
    return AdminPolicy(admin="admin", treasury="treasury", fee_rate_bps=250, escrow_timeout=1440)


@pytest.fixture
def ledger() -> InMemoryLedger:
    ledger = InMemoryLedger()
    ledger.credit("buyer", 1_000_000)
    return ledger


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(height=100)


@pytest.fixture
def engine(session_factory, policy, ledger, clock) -> SettlementEngine:
    return SettlementEngine(
        session_factory, policy, ledger, escrow_account="escrow", clock=clock,
    )
