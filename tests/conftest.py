"""Pytest configuration and fixtures for studio analytics tests."""

from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any
from unittest.mock import patch

import pytest
import pytest_asyncio
import structlog
from fakeredis import aioredis as fakeredis
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from studio_analytics.analytics.categories import (
    SubscriptionState,
    classify,
    classify_visit,
    monthly_rate,
)
from studio_analytics.analytics.records import SubscriptionRecord, VisitRecord
from studio_analytics.db.base import Base
from studio_analytics.db.session import get_db, get_session_factory
from studio_analytics.main import app
from studio_analytics.models import RevenuePeriodSummary, SubscriptionEvent, VisitEvent

# Uncached loggers so capture_logs() sees events from module-level loggers
structlog.configure(cache_logger_on_first_use=False)

# Wednesday; the week starts Monday 2026-02-16
NOW = datetime(2026, 2, 18, 12, 0, 0)


@pytest.fixture
def now() -> datetime:
    """Fixed reference moment for deterministic aggregation."""
    return NOW


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path: Path) -> AsyncGenerator[Any, None]:
    """Create a file-backed SQLite engine so concurrent sessions share data."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'records.db'}",
        echo=False,
        poolclass=NullPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_factory(test_engine: Any) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test engine."""
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def test_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture(scope="function")
async def test_redis() -> AsyncGenerator[Any, None]:
    """Create fake Redis client for testing."""
    redis_client = fakeredis.FakeRedis(decode_responses=True)
    yield redis_client
    await redis_client.flushall()
    await redis_client.aclose()


@pytest_asyncio.fixture(scope="function")
async def test_client(
    session_factory: async_sessionmaker[AsyncSession],
    test_redis: Any,
) -> AsyncGenerator[AsyncClient, None]:
    """Create test HTTP client with database and Redis overrides."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    def override_get_session_factory() -> async_sessionmaker[AsyncSession]:
        return session_factory

    async def fake_get_redis() -> Any:
        return test_redis

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = override_get_session_factory

    with (
        patch("studio_analytics.core.cache.get_redis", fake_get_redis),
        patch("studio_analytics.api.health.get_redis", fake_get_redis),
    ):
        transport = ASGITransport(app=app)  # type: ignore[arg-type]
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            yield client

    app.dependency_overrides.clear()


# Store row factories


@pytest.fixture
def make_subscription_event() -> Callable[..., SubscriptionEvent]:
    """Build an unsaved subscription_events row."""

    def _make(
        email: str = "jane@example.com",
        plan_name: str = "SKY UNLIMITED",
        state: str = "Valid Now",
        price: str = "200.00",
        created_at: str = "2025-06-01 10:00:00 -0400",
        canceled_at: str | None = None,
        person_name: str = "Jane Doe",
    ) -> SubscriptionEvent:
        return SubscriptionEvent(
            plan_name=plan_name,
            state=state,
            price=Decimal(price),
            person_email=email,
            person_name=person_name,
            created_at=created_at,
            canceled_at=canceled_at,
        )

    return _make


@pytest.fixture
def make_visit_event() -> Callable[..., VisitEvent]:
    """Build an unsaved visit_events row."""

    def _make(
        email: str = "jane@example.com",
        attended_at: str = "2026-02-10 09:00:00 -0500",
        pass_label: str = "Drop-In",
        event_name: str = "Morning Flow",
        is_subscriber_visit: bool = False,
    ) -> VisitEvent:
        return VisitEvent(
            person_email=email,
            person_name=email.split("@")[0].title(),
            event_name=event_name,
            pass_label=pass_label,
            attended_at=attended_at,
            is_subscriber_visit=is_subscriber_visit,
        )

    return _make


@pytest.fixture
def make_revenue_period() -> Callable[..., RevenuePeriodSummary]:
    """Build an unsaved revenue_period_summaries row."""

    def _make(
        period_start: date,
        period_end: date,
        net_revenue: str,
        category: str = "Memberships",
        locked: bool = False,
    ) -> RevenuePeriodSummary:
        return RevenuePeriodSummary(
            period_start=period_start,
            period_end=period_end,
            category=category,
            gross_revenue=Decimal(net_revenue),
            fees=Decimal("0"),
            refunded=Decimal("0"),
            net_revenue=Decimal(net_revenue),
            locked=locked,
        )

    return _make


@pytest_asyncio.fixture
async def add_rows(
    session_factory: async_sessionmaker[AsyncSession],
) -> Callable[..., Awaitable[None]]:
    """Persist rows in their own committed session."""

    async def _add(*rows: Any) -> None:
        async with session_factory() as session:
            session.add_all(rows)
            await session.commit()

    return _add


# Normalized record factories


@pytest.fixture
def sub_record() -> Callable[..., SubscriptionRecord]:
    """Build a normalized subscription record."""
    counter = iter(range(1, 1_000_000))

    def _make(
        email: str = "jane@example.com",
        plan_name: str = "SKY UNLIMITED",
        created_at: datetime = datetime(2025, 6, 1),
        canceled_at: datetime | None = None,
        state: SubscriptionState | None = None,
        price: float = 200.0,
        name: str = "Jane Doe",
    ) -> SubscriptionRecord:
        category, is_annual = classify(plan_name)
        if state is None:
            state = SubscriptionState.CANCELED if canceled_at else SubscriptionState.VALID_NOW
        return SubscriptionRecord(
            id=next(counter),
            plan_name=plan_name,
            category=category,
            is_annual=is_annual,
            price=price,
            monthly_rate=monthly_rate(price, is_annual),
            state=state,
            email=email,
            name=name,
            created_at=created_at,
            canceled_at=canceled_at,
        )

    return _make


@pytest.fixture
def visit_record() -> Callable[..., VisitRecord]:
    """Build a normalized visit record."""

    def _make(
        email: str = "jane@example.com",
        attended_at: datetime = datetime(2026, 2, 10, 9),
        pass_label: str = "Drop-In",
        is_subscriber_visit: bool = False,
    ) -> VisitRecord:
        return VisitRecord(
            email=email,
            name=email.split("@")[0].title(),
            pass_label=pass_label,
            visit_type=classify_visit(pass_label),
            attended_at=attended_at,
            is_subscriber_visit=is_subscriber_visit,
        )

    return _make
