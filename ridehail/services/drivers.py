"""Driver-side operations: location pings, online/offline and stats."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

from ridehail.domain.clock import utcnow
from ridehail.domain.enums import DriverStatus, TripStatus
from ridehail.domain.errors import NotFound, ValidationError
from ridehail.infrastructure.gateway import PersistenceGateway, UnitOfWork
from ridehail.infrastructure.models import DriverModel, TripModel
from ridehail.services import notifications
from ridehail.services.notifications import NotificationBridge

logger = logging.getLogger(__name__)


@dataclass
class DriverStats:
    driver: DriverModel
    completed_trips: int = 0
    recent_trips: list[TripModel] = field(default_factory=list)


class DriverService:
    def __init__(
        self,
        gateway: PersistenceGateway,
        bridge: NotificationBridge,
        *,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.gateway = gateway
        self.bridge = bridge
        self.clock = clock

    async def get(self, driver_id: int) -> DriverModel:
        driver = await self.gateway.read(lambda uow: uow.drivers.get(driver_id))
        if driver is None:
            raise NotFound(f"Driver {driver_id} not found")
        return driver

    async def update_location(self, driver_id: int, lat: float, lng: float) -> DriverModel:
        """Store a ping; while a trip is ongoing it is also kept for the trip path."""
        if not all(isinstance(v, (int, float)) and math.isfinite(v) for v in (lat, lng)):
            raise ValidationError("lat and lng must be finite numbers")
        now = self.clock()
        async with self.gateway.unit_of_work() as uow:
            if not await uow.drivers.update_location(driver_id, lat, lng, now):
                raise NotFound(f"Driver {driver_id} not found")
            active = await uow.trips.active_for_driver(driver_id)
            if active is not None and active.status == TripStatus.ONGOING.value:
                await uow.locations.append(active.id, lat, lng, now)
            driver = await uow.drivers.get(driver_id)

        if active is not None:
            await self.bridge.emit(
                notifications.DRIVER_LIVE_LOCATION,
                active.id,
                driver_id=driver_id,
                lat=lat,
                lng=lng,
                at=now,
            )
        return driver

    async def set_status(self, driver_id: int, status: str) -> DriverModel:
        try:
            new_status = DriverStatus(status)
        except ValueError:
            raise ValidationError(f"Unknown driver status {status!r}") from None
        async with self.gateway.unit_of_work() as uow:
            if not await uow.drivers.set_status(driver_id, new_status):
                raise NotFound(f"Driver {driver_id} not found")
            driver = await uow.drivers.get(driver_id)
        logger.info("Driver %s is now %s", driver_id, new_status.value)
        return driver

    async def stats(self, driver_id: int, recent: int = 10) -> DriverStats:
        async def _read(uow: UnitOfWork) -> DriverStats:
            driver = await uow.drivers.get(driver_id)
            if driver is None:
                raise NotFound(f"Driver {driver_id} not found")
            count, _ = await uow.trips.completed_totals(driver_id)
            trips = await uow.trips.list_by_driver(
                driver_id, status=TripStatus.COMPLETED.value, limit=recent
            )
            return DriverStats(driver=driver, completed_trips=count, recent_trips=trips)

        return await self.gateway.read(_read)
