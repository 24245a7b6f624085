"""
Shared test fixtures.

Uses a file-backed SQLite database (via aiosqlite) so tests run without
Docker / PostgreSQL / Redis.  Every transaction opens with
``BEGIN IMMEDIATE`` so concurrent sessions queue on SQLite's write lock
the way PostgreSQL row locks would make them wait.  Redis is an
``AsyncMock``.
"""

from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event

from ridehail.config import Settings
from ridehail.infrastructure.database import Database
from ridehail.infrastructure.gateway import PersistenceGateway
from ridehail.infrastructure.models import DriverModel, UserModel
from ridehail.services.container import Services, build_services

# Olaya, Riyadh
PICKUP = (24.6907, 46.6853)
DROPOFF = (24.7560, 46.6290)


class FakeClock:
    """Settable clock shared by every service under test."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> datetime:
        self.now += timedelta(**delta)
        return self.now


def make_settings(**overrides) -> Settings:
    values = {
        "database_url": "sqlite+aiosqlite://",
        "maintenance_worker_enabled": False,
        "read_retry_backoff_seconds": 0.0,
        "earnings_sync_backoff_seconds": 0.0,
        **overrides,
    }
    return Settings(**values)


def trip_payload(**overrides) -> dict:
    return {
        "user_id": 1,
        "pickup_location": "Olaya Towers",
        "dropoff_location": "Riyadh Park",
        "pickup_lat": PICKUP[0],
        "pickup_lng": PICKUP[1],
        "dropoff_lat": DROPOFF[0],
        "dropoff_lng": DROPOFF[1],
        "car_type": "economy",
        "cost": 38.5,
        "distance": 11.2,
        "duration": 18,
        **overrides,
    }


# ── Fixtures ──────────────────────────────────────────────────────────


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def redis() -> AsyncMock:
    mock_redis = AsyncMock()
    mock_redis.set = AsyncMock(return_value=True)
    mock_redis.eval = AsyncMock(return_value=1)
    mock_redis.publish = AsyncMock(return_value=1)
    return mock_redis


@pytest_asyncio.fixture
async def database(tmp_path) -> AsyncGenerator[Database, None]:
    """Fresh schema per test, disposed afterwards."""
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'ridehail.db'}")

    @event.listens_for(db.engine.sync_engine, "connect")
    def _no_implicit_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(db.engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    await db.create_all()
    yield db
    await db.dispose()


@pytest.fixture
def gateway(database: Database) -> PersistenceGateway:
    return PersistenceGateway(database, read_attempts=2, read_backoff_seconds=0.0)


@pytest.fixture
def services(gateway: PersistenceGateway, redis: AsyncMock, clock: FakeClock) -> Services:
    built = build_services(make_settings(), gateway, redis)
    for component in (built.earnings, built.lifecycle, built.matching, built.drivers):
        component.clock = clock
    return built


@pytest_asyncio.fixture
async def seeded(database: Database, clock: FakeClock) -> dict:
    """One passenger, three online economy drivers and a luxury driver near the pickup."""
    async with database.session_factory() as session:
        session.add(UserModel(id=1, name="Omar", phone="+966500000001"))
        session.add_all(
            [
                DriverModel(
                    id=10,
                    name="Ahmed",
                    phone="+966510000010",
                    car_type="economy",
                    status="online",
                    last_lat=24.6920,
                    last_lng=46.6870,
                    last_location_at=clock.now,
                ),
                DriverModel(
                    id=11,
                    name="Majed",
                    phone="+966510000011",
                    car_type="economy",
                    status="online",
                    last_lat=24.7010,
                    last_lng=46.6950,
                    last_location_at=clock.now,
                ),
                DriverModel(
                    id=12,
                    name="Saleh",
                    phone="+966510000012",
                    car_type="economy",
                    status="online",
                    last_lat=24.6600,
                    last_lng=46.7100,
                    last_location_at=clock.now,
                ),
                DriverModel(
                    id=20,
                    name="Fahad",
                    phone="+966510000020",
                    car_type="luxury",
                    status="online",
                    last_lat=24.6950,
                    last_lng=46.6800,
                    last_location_at=clock.now,
                ),
            ]
        )
        await session.commit()
    return {"user_id": 1, "drivers": [10, 11, 12], "luxury_driver": 20}


@pytest_asyncio.fixture
async def client(database: Database, redis: AsyncMock, seeded: dict):
    """AsyncClient backed by SQLite and a mocked Redis."""
    from ridehail.api.app import create_app

    app = create_app(make_settings(), database=database, redis=redis)
    app.state.limiter.enabled = False

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.state.limiter.enabled = True
