import os

# Point the module-level engine at SQLite before core.database is imported
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from core.models.base import Base
from core.resilience import DeadLetterQueue
from discounts.audit import AuditRecorder
from discounts.config import AuditConfig
from discounts.repository import DiscountAuditRepository
import discounts.db_models  # noqa: F401


@pytest_asyncio.fixture
async def engine():
    """In-memory SQLite DB for fast testing."""
    _engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with _engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield _engine
    async with _engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await _engine.dispose()


@pytest_asyncio.fixture
async def session(engine):
    """Provides a database session, rolled back after the test."""
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as s:
        yield s
        await s.rollback()


@pytest.fixture
def audit_config():
    return AuditConfig(max_retries=2, backoff_base=0.0, backoff_max=0.0)


@pytest.fixture
def dlq():
    return DeadLetterQueue(max_replays=2)


@pytest.fixture
def repository(session):
    return DiscountAuditRepository(session)


@pytest.fixture
def recorder(repository, dlq, audit_config):
    return AuditRecorder(repository, dlq, audit_config)
