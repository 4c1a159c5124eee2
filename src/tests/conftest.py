"""Shared pytest fixtures for test suite."""

import os
from collections.abc import AsyncGenerator
from datetime import datetime, timezone
from unittest.mock import AsyncMock

# Set test environment variables BEFORE any package imports
os.environ["SELECTOR_ENVIRONMENT"] = "testing"
os.environ["SELECTOR_LOG_LEVEL"] = "WARNING"
os.environ["SELECTOR_OTEL_ENABLED"] = "false"

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from dataselector.models.base import Base
from dataselector.selectors import SelectorRegistry
from tests.models import Country, Customer, Order


# ===== Database Fixtures =====


@pytest_asyncio.fixture
async def test_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create an in-memory SQLite engine with all tables.

    Yields:
        AsyncEngine: Test database engine
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Database session rolled back after each test.

    Args:
        test_engine: Test database engine

    Yields:
        AsyncSession: Clean database session for testing
    """
    session_maker = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with session_maker() as session:
        transaction = await session.begin()
        try:
            yield session
        finally:
            await transaction.rollback()


def _ts(day: int) -> datetime:
    return datetime(2024, 1, day, 12, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def seeded_session(db_session: AsyncSession) -> AsyncSession:
    """Session holding a small customer/order data set.

    Customers (id: name, active, age, created day, updated day):
        1: Ann,   active,   34, day 1, day 9
        2: Bob,   inactive, 25, day 2, day 3
        3: Cleo,  active,   41, day 3, day 4
        4: Dan,   active,   19, day 4, day 8  (soft-deleted)
        5: Eve,   active,   28, day 5, day 5

    Orders (id: customer, date, total, status):
        10: Ann,  2020-01-01,  40, paid
        11: Ann,  2020-02-01,  90, pending
        12: Cleo, 2020-03-01, 120, paid
        13: Cleo, 2020-04-01,  10, paid (soft-deleted)
        14: Dan,  2020-05-01,  70, paid
    """
    db_session.add_all([
        Country(id=1, name="France", code="FR"),
        Country(id=2, name="Japan", code="JP"),
    ])
    db_session.add_all([
        Customer(id=1, name="Ann", email="ann@example.com", active=True, age=34,
                 country_id=1, created_at=_ts(1), updated_at=_ts(9)),
        Customer(id=2, name="Bob", email="bob@example.com", active=False, age=25,
                 country_id=2, created_at=_ts(2), updated_at=_ts(3)),
        Customer(id=3, name="Cleo", email=None, active=True, age=41,
                 country_id=None, created_at=_ts(3), updated_at=_ts(4)),
        Customer(id=4, name="Dan", email="dan@example.com", active=True, age=19,
                 country_id=1, created_at=_ts(4), updated_at=_ts(8), deleted_at=_ts(10)),
        Customer(id=5, name="Eve", email="eve@example.com", active=True, age=28,
                 country_id=2, created_at=_ts(5), updated_at=_ts(5)),
    ])
    db_session.add_all([
        Order(id=10, customer_id=1, date="2020-01-01", total=40, status="paid"),
        Order(id=11, customer_id=1, date="2020-02-01", total=90, status="pending"),
        Order(id=12, customer_id=3, date="2020-03-01", total=120, status="paid"),
        Order(id=13, customer_id=3, date="2020-04-01", total=10, status="paid", deleted_at=_ts(6)),
        Order(id=14, customer_id=4, date="2020-05-01", total=70, status="paid"),
    ])
    await db_session.flush()
    return db_session


@pytest.fixture
def mock_session() -> AsyncMock:
    """Mock async session for tests that only check what reaches the database."""
    session = AsyncMock(spec=AsyncSession)
    session.execute = AsyncMock()
    session.bind = None
    return session


@pytest.fixture
def registry() -> SelectorRegistry:
    """Fresh registry per test, so registrations never leak between tests."""
    return SelectorRegistry()
