"""
PersistenceGateway -- the single entry point the services use to reach
the relational store.

* ``unit_of_work()`` opens one session / transaction and exposes every
  repository on it; commit on success, rollback on error.
* DBAPI errors (deadlocks, dropped connections, pool timeouts) surface
  as ``PersistenceFailure``; integrity violations propagate.  Mutations
  are never retried here; ``read()`` retries idempotent reads with
  exponential backoff.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, TypeVar

from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.exc import TimeoutError as PoolTimeout
from sqlalchemy.ext.asyncio import AsyncSession

from .database import Database
from .repositories import (
    CounterRepository,
    DriverRepository,
    EarningsRepository,
    PendingRideRepository,
    TripLocationRepository,
    TripRepository,
    UserRepository,
)
from ridehail.domain.errors import PersistenceFailure

logger = logging.getLogger(__name__)

T = TypeVar("T")

_TRANSIENT = (DBAPIError, PoolTimeout, OSError)


class UnitOfWork:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.trips = TripRepository(session)
        self.pending = PendingRideRepository(session)
        self.drivers = DriverRepository(session)
        self.users = UserRepository(session)
        self.earnings = EarningsRepository(session)
        self.locations = TripLocationRepository(session)
        self.counters = CounterRepository(session)


class PersistenceGateway:
    def __init__(
        self,
        database: Database,
        *,
        read_attempts: int = 3,
        read_backoff_seconds: float = 0.1,
    ):
        self.database = database
        self.read_attempts = max(1, read_attempts)
        self.read_backoff_seconds = read_backoff_seconds

    @asynccontextmanager
    async def unit_of_work(self) -> AsyncIterator[UnitOfWork]:
        async with self.database.session_factory() as session:
            try:
                yield UnitOfWork(session)
                await session.commit()
            except IntegrityError:
                await session.rollback()
                raise
            except _TRANSIENT as exc:
                await session.rollback()
                raise PersistenceFailure(f"Database unavailable: {exc}") from exc
            except Exception:
                await session.rollback()
                raise

    async def read(self, fn: Callable[[UnitOfWork], Awaitable[T]]) -> T:
        """Run an idempotent read, retrying transient failures."""
        attempt = 1
        while True:
            try:
                async with self.unit_of_work() as uow:
                    return await fn(uow)
            except PersistenceFailure:
                if attempt >= self.read_attempts:
                    raise
                delay = self.read_backoff_seconds * 2 ** (attempt - 1)
                logger.warning(
                    "Read failed (attempt %d/%d), retrying in %.2fs",
                    attempt,
                    self.read_attempts,
                    delay,
                )
                await asyncio.sleep(delay)
                attempt += 1

    async def close(self) -> None:
        await self.database.dispose()
