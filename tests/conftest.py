"""
Test configuration and fixtures
FastAPI + SQLAlchemy async against a per-test SQLite file
"""

import os
from datetime import date, time, timedelta
from decimal import Decimal
from typing import Optional
from uuid import uuid4

import fakeredis.aioredis
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

# Set test environment before the application reads its settings
os.environ["APP_ENV"] = "testing"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./bus_ticketing_test.db"
os.environ["PLACETOPAY_URL"] = "https://checkout.test/api"
os.environ["PLACETOPAY_LOGIN"] = "test-login"
os.environ["PLACETOPAY_SECRET_KEY"] = "test-secret"
os.environ["PUBLIC_BASE_URL"] = "https://tickets.example.com"

from bus_ticketing.core.database import Base, get_session
from bus_ticketing.core.notification_guard import NotificationGuard
from bus_ticketing.core.redis import get_redis
from bus_ticketing.models import (
    Booking,
    BookingSeat,
    BookingStatus,
    Payment,
    PaymentStatus,
    Route,
    Schedule
)
from bus_ticketing.config import settings
from tests.helpers import FakeClock, FakeGateway


@pytest_asyncio.fixture(scope="function")
async def test_db(tmp_path):
    """Async engine over a fresh SQLite file with all tables created"""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        echo=False,
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_db):
    return async_sessionmaker(
        test_db,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory):
    """Session for test setup and assertions"""
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def guard(clock):
    return NotificationGuard(dedup_window=60, lock_ttl=30, sweep_interval=600, clock=clock)


@pytest.fixture
def fake_gateway():
    return FakeGateway()


@pytest_asyncio.fixture
async def redis_client():
    """In-memory Redis standing in for the cache server"""
    client = fakeredis.aioredis.FakeRedis(decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


@pytest_asyncio.fixture
async def client(session_factory, guard, fake_gateway, redis_client):
    """Create test client with dependency overrides"""
    from bus_ticketing.main import app
    from bus_ticketing.api.deps import get_gateway_client, get_notification_guard

    # A new session per request, like production
    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_notification_guard] = lambda: guard
    app.dependency_overrides[get_gateway_client] = lambda: fake_gateway
    app.dependency_overrides[get_redis] = lambda: redis_client

    try:
        transport = ASGITransport(app=app, raise_app_exceptions=False)
        async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
            yield ac
    finally:
        app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def test_schedule(db_session):
    """Create a route with one daily departure"""
    route = Route(
        origin="Quito",
        destination="Guayaquil",
        distance_km=Decimal("420.50"),
        estimated_duration_minutes=480
    )
    db_session.add(route)
    await db_session.flush()

    schedule = Schedule(
        route_id=route.id,
        departure_time=time(8, 30),
        bus_number="B-101",
        bus_type="Executive",
        price=Decimal("12.50"),
        is_active=True
    )
    db_session.add(schedule)
    await db_session.commit()
    return schedule


@pytest.fixture
def create_booking(db_session, test_schedule):
    """Factory creating a booking with seat lines"""

    async def _create(
        reference_code: Optional[str] = None,
        status: Optional[BookingStatus] = BookingStatus.PENDING,
        seat_prices=(Decimal("12.50"), Decimal("12.50")),
        trip_date: Optional[date] = None,
        barcode: Optional[str] = None,
        ticket_validated: bool = False
    ) -> Booking:
        booking = Booking(
            schedule_id=test_schedule.id,
            reference_code=reference_code or f"RES-{uuid4().hex[:8].upper()}",
            barcode=barcode,
            status=status,
            trip_date=trip_date or date.today() + timedelta(days=3),
            passenger_name="Ana Torres",
            passenger_email="ana@example.com",
            ticket_validated=ticket_validated
        )
        db_session.add(booking)
        await db_session.flush()

        for number, price in enumerate(seat_prices, start=1):
            db_session.add(BookingSeat(booking_id=booking.id, seat_number=number, price=price))

        await db_session.commit()
        return booking

    return _create


@pytest.fixture
def create_payment(db_session):
    """Factory creating a payment for an existing booking"""

    async def _create(
        booking: Booking,
        request_id: Optional[str] = None,
        status: PaymentStatus = PaymentStatus.PENDING,
        amount: Decimal = Decimal("25.00"),
        gateway_payload: Optional[str] = None
    ) -> Payment:
        payment = Payment(
            booking_id=booking.id,
            gateway_request_id=request_id,
            amount=amount,
            currency="USD",
            status=status,
            gateway_payload=gateway_payload
        )
        db_session.add(payment)
        await db_session.commit()
        return payment

    return _create


@pytest.fixture
def gateway_settings(monkeypatch):
    """Patch settings for a single test"""

    def _patch(**values):
        for name, value in values.items():
            monkeypatch.setattr(settings, name, value)

    return _patch
