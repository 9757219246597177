"""
Pytest fixtures for test database, client, clock, messaging and auth.

The application is pointed at a throwaway database before it is imported:
SQLite (aiosqlite) in the temp dir by default, or TEST_DATABASE_URL.
Tables are created and dropped around every test for isolation.
"""

import os
import tempfile

_DEFAULT_TEST_DB = os.path.join(tempfile.gettempdir(), f"train_booking_test_{os.getpid()}.db")
TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL", f"sqlite+aiosqlite:///{_DEFAULT_TEST_DB}")

os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["REDIS_ENABLED"] = "false"
os.environ["SWEEPER_ENABLED"] = "false"
os.environ["MESSAGING_BACKEND"] = "log"

from datetime import datetime, timedelta, timezone  # noqa: E402
from decimal import Decimal  # noqa: E402
from typing import AsyncGenerator, Optional  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: E402

from app.core.clock import FixedClock, get_clock  # noqa: E402
from app.core.security import create_access_token, hash_password  # noqa: E402
from app.db.base import Base  # noqa: E402
from app.db.session import AsyncSessionLocal, engine  # noqa: E402
from app.infrastructure.messaging import MessagingSender, SendResult, get_messaging_sender  # noqa: E402
from app.main import app  # noqa: E402
from app.models.booking import Booking  # noqa: E402
from app.models.station import Station  # noqa: E402
from app.models.train import Train  # noqa: E402
from app.models.trip import Trip, TripStatus  # noqa: E402
from app.models.user import User  # noqa: E402
from app.schemas.booking import BookingCreate  # noqa: E402
from app.services import booking_service  # noqa: E402

# Sunday morning, Kuwait time
NOW = datetime(2026, 3, 1, 9, 0, tzinfo=timezone(timedelta(hours=3)))


class RecordingSender(MessagingSender):
    """Captures outgoing messages. Recipients in `fail_for` get a failed result."""

    def __init__(self):
        self.sms: list[tuple[str, str]] = []
        self.emails: list[tuple[str, str, str]] = []
        self.fail_for: set[str] = set()
        self.raise_for: set[str] = set()

    async def send_sms(self, phone: str, text: str) -> SendResult:
        if phone in self.raise_for:
            raise RuntimeError("gateway exploded")
        self.sms.append((phone, text))
        if phone in self.fail_for:
            return SendResult.failed("HTTP 400: invalid number")
        return SendResult.ok()

    async def send_email(self, address: str, subject: str, body: str) -> SendResult:
        self.emails.append((address, subject, body))
        if address in self.fail_for:
            return SendResult.failed("mailbox unavailable")
        return SendResult.ok()


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create tables, yield session, then drop tables for isolation."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(NOW)


@pytest.fixture
def sender() -> RecordingSender:
    return RecordingSender()


@pytest_asyncio.fixture(scope="function")
async def client(
    db_session: AsyncSession,
    clock: FixedClock,
    sender: RecordingSender,
) -> AsyncGenerator[AsyncClient, None]:
    """
    HTTP client over the ASGI app. Requests get their own sessions from
    the app's factory (already bound to the test database); the clock and
    messaging sender are replaced.
    """
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_messaging_sender] = lambda: sender

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def _make_user(db: AsyncSession, email: str, username: str, is_admin: bool = False) -> User:
    user = User(
        email=email,
        username=username,
        hashed_password=hash_password("testpassword123"),
        is_admin=is_admin,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


def _headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(data={'sub': str(user.id)})}"}


@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession) -> User:
    return await _make_user(db_session, "test@example.com", "testuser")


@pytest_asyncio.fixture
async def other_user(db_session: AsyncSession) -> User:
    return await _make_user(db_session, "other@example.com", "otheruser")


@pytest_asyncio.fixture
async def admin_user(db_session: AsyncSession) -> User:
    return await _make_user(db_session, "ops@example.com", "operator", is_admin=True)


@pytest_asyncio.fixture
async def auth_headers(test_user: User) -> dict:
    """Authorization headers with Bearer token."""
    return _headers(test_user)


@pytest_asyncio.fixture
async def other_headers(other_user: User) -> dict:
    return _headers(other_user)


@pytest_asyncio.fixture
async def admin_headers(admin_user: User) -> dict:
    return _headers(admin_user)


@pytest_asyncio.fixture
async def stations(db_session: AsyncSession) -> tuple[Station, Station]:
    origin = Station(name="Kuwait City", latitude=29.3759, longitude=47.9774)
    destination = Station(name="Al Jahra", latitude=29.3375, longitude=47.6581)
    db_session.add_all([origin, destination])
    await db_session.commit()
    return origin, destination


@pytest_asyncio.fixture
async def train(db_session: AsyncSession) -> Train:
    train = Train(train_number="KW-101", type="Express", total_seats=50)
    db_session.add(train)
    await db_session.commit()
    await db_session.refresh(train)
    return train


@pytest.fixture
def make_trip(db_session: AsyncSession, train: Train, stations):
    """Factory: a trip departing `departs_in` after NOW."""

    async def _make(
        departs_in: timedelta = timedelta(hours=48),
        duration: timedelta = timedelta(hours=1),
        status: TripStatus = TripStatus.ON_TIME,
    ) -> Trip:
        origin, destination = stations
        departure = NOW + departs_in
        trip = Trip(
            train_id=train.id,
            from_station_id=origin.id,
            to_station_id=destination.id,
            departure_time=departure,
            arrival_time=departure + duration,
            status=status.value,
        )
        db_session.add(trip)
        await db_session.commit()
        await db_session.refresh(trip)
        return trip

    return _make


@pytest_asyncio.fixture
async def test_trip(make_trip) -> Trip:
    """Departs in two days."""
    return await make_trip()


@pytest_asyncio.fixture
async def soon_trip(make_trip) -> Trip:
    """Departs in two hours."""
    return await make_trip(departs_in=timedelta(hours=2))


@pytest.fixture
def book(db_session: AsyncSession):
    """Factory: create a PendingPayment booking through the service."""

    async def _book(
        trip: Trip,
        seat: int,
        user: Optional[User] = None,
        price: Optional[Decimal] = None,
        phone: str = "55512345",
        name: str = "Test Passenger",
        now: datetime = NOW,
    ) -> Booking:
        data = BookingCreate(
            trip_id=trip.id,
            seat_number=seat,
            passenger_name=name,
            passenger_phone=phone,
        )
        return await booking_service.create_booking(
            db_session, data, user.id if user else None, now, price=price
        )

    return _book
