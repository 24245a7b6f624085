"""
EarningsSync
============

Keeps each driver's running counters and the dated ``driver_earnings``
ledger in step.

* ``record_completion`` -- row-locks the driver, rolls stale today-counters
  over, applies the atomic increment and upserts today's ledger row, all in
  one transaction.
* ``settle_trip``       -- ``record_completion`` with bounded retry; a final
  failure is logged as reconciliation debt, never raised, because the trip
  completion has already committed.
* ``reconcile``         -- rewrite today's ledger row from the counters.
* ``reset_daily``       -- zero ``today_*`` for drivers not yet reset today.
* ``audit``             -- compare counters with completed trips.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, Optional

from ridehail.domain.clock import utcnow
from ridehail.domain.errors import NotFound, PersistenceFailure
from ridehail.infrastructure.gateway import PersistenceGateway, UnitOfWork
from ridehail.infrastructure.models import DriverEarningsModel

logger = logging.getLogger(__name__)


def day_start(now: datetime) -> datetime:
    return datetime.combine(now.date(), time.min, tzinfo=timezone.utc)


@dataclass
class DriftReport:
    driver_id: int
    recorded_trips: int
    recorded_earnings: float
    completed_trips: int
    completed_earnings: float

    @property
    def in_sync(self) -> bool:
        return (
            self.recorded_trips == self.completed_trips
            and abs(self.recorded_earnings - self.completed_earnings) < 0.005
        )


@dataclass
class SyncSummary:
    synced: int = 0
    failed: list[int] = field(default_factory=list)


class EarningsSync:
    def __init__(
        self,
        gateway: PersistenceGateway,
        *,
        attempts: int = 3,
        backoff_seconds: float = 0.2,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.gateway = gateway
        self.attempts = max(1, attempts)
        self.backoff_seconds = backoff_seconds
        self.clock = clock

    async def record_completion(
        self, driver_id: int, amount: float, *, now: Optional[datetime] = None
    ) -> DriverEarningsModel:
        now = now or self.clock()
        async with self.gateway.unit_of_work() as uow:
            if await uow.drivers.get_for_update(driver_id) is None:
                raise NotFound(f"Driver {driver_id} not found")
            await uow.drivers.reset_today(
                day_start=day_start(now), at=now, driver_id=driver_id
            )
            await uow.drivers.increment_counters(driver_id, 1, amount)
            return await self._reconcile(uow, driver_id, now)

    async def settle_trip(
        self, trip_id: str, driver_id: int, amount: float
    ) -> Optional[DriverEarningsModel]:
        for attempt in range(1, self.attempts + 1):
            try:
                return await self.record_completion(driver_id, amount)
            except PersistenceFailure as exc:
                if attempt == self.attempts:
                    logger.error(
                        "Reconciliation debt: trip %s completed but earnings of "
                        "%.2f for driver %s were not recorded: %s",
                        trip_id,
                        amount,
                        driver_id,
                        exc,
                    )
                    return None
                await asyncio.sleep(self.backoff_seconds * 2 ** (attempt - 1))
        return None

    async def reconcile(
        self, driver_id: int, *, now: Optional[datetime] = None
    ) -> DriverEarningsModel:
        now = now or self.clock()
        async with self.gateway.unit_of_work() as uow:
            if await uow.drivers.get_for_update(driver_id) is None:
                raise NotFound(f"Driver {driver_id} not found")
            return await self._reconcile(uow, driver_id, now)

    async def reconcile_all(self, *, now: Optional[datetime] = None) -> SyncSummary:
        summary = SyncSummary()
        driver_ids = await self.gateway.read(lambda uow: uow.drivers.list_ids())
        for driver_id in driver_ids:
            try:
                await self.reconcile(driver_id, now=now)
                summary.synced += 1
            except (PersistenceFailure, NotFound) as exc:
                logger.warning("Earnings sync failed for driver %s: %s", driver_id, exc)
                summary.failed.append(driver_id)
        logger.info(
            "Earnings sync: %d drivers synced, %d failed",
            summary.synced,
            len(summary.failed),
        )
        return summary

    async def reset_daily(self, now: Optional[datetime] = None) -> int:
        now = now or self.clock()
        async with self.gateway.unit_of_work() as uow:
            count = await uow.drivers.reset_today(day_start=day_start(now), at=now)
        logger.info("Daily earnings reset: %d drivers", count)
        return count

    async def history(self, driver_id: int, days: int = 30) -> list[DriverEarningsModel]:
        since: date = self.clock().date() - timedelta(days=days)
        return await self.gateway.read(lambda uow: uow.earnings.history(driver_id, since))

    async def audit(self, driver_id: int) -> DriftReport:
        async def _read(uow: UnitOfWork) -> DriftReport:
            driver = await uow.drivers.get(driver_id)
            if driver is None:
                raise NotFound(f"Driver {driver_id} not found")
            count, total = await uow.trips.completed_totals(driver_id)
            return DriftReport(
                driver_id=driver_id,
                recorded_trips=driver.total_trips,
                recorded_earnings=round(driver.total_earnings, 2),
                completed_trips=count,
                completed_earnings=round(total, 2),
            )

        report = await self.gateway.read(_read)
        if not report.in_sync:
            logger.warning("Earnings drift for driver %s: %s", driver_id, report)
        return report

    async def _reconcile(
        self, uow: UnitOfWork, driver_id: int, now: datetime
    ) -> DriverEarningsModel:
        driver = await uow.drivers.get(driver_id)
        snapshot = {
            "today_trips": driver.today_trips_count,
            "today_earnings": round(driver.today_earnings, 2),
            "total_trips": driver.total_trips,
            "total_earnings": round(driver.total_earnings, 2),
        }
        return await uow.earnings.upsert_today(driver_id, now.date(), snapshot, now)
