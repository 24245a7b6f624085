"""
MatchingEngine
==============

Turns a passenger's trip into a driver-facing pending ride request and
resolves what drivers do with it.

Flows
-----
* **Broadcast** -- every eligible driver sees the waiting request; the
  first ``accept`` to commit wins, the rest get ``Conflict``.
* **Offer** (direct assign) -- the trip is reserved for one driver
  (``TripLifecycle.offer``); the request stays ``waiting`` but drops out
  of everyone else's list.  If that driver rejects, the trip returns to
  ``pending`` and re-enters the broadcast.  If the request expires before
  the driver starts the trip, the sweep cancels the trip as well.

Every path that touches both rows writes the trip first, then the request.

A request never goes back to ``waiting``, and a driver in ``rejected_by``
is never shown or assigned that request again.
"""

from __future__ import annotations

import logging
import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Optional

from ridehail.domain.clock import utcnow
from ridehail.domain.entities import TripDraft
from ridehail.domain.enums import RequestStatus, TripEvent, TripStatus
from ridehail.domain.errors import (
    Conflict,
    InvalidTransition,
    NotFound,
    PersistenceFailure,
    ValidationError,
)
from ridehail.domain.geo import GeoIndex
from ridehail.infrastructure.gateway import PersistenceGateway, UnitOfWork
from ridehail.infrastructure.models import DriverModel, PendingRideModel, TripModel
from ridehail.services.lifecycle import TripLifecycle

logger = logging.getLogger(__name__)

# Driver-facing listing bounds
MIN_SEARCH_RADIUS_KM = 1.0
MAX_SEARCH_RADIUS_KM = 100.0
DEFAULT_LIST_LIMIT = 30

# Trips a driver has not started yet; an expired request takes them down too
_UNSTARTED = (TripStatus.PENDING.value, TripStatus.ASSIGNED.value)


def new_trip_id(now: datetime) -> str:
    return f"TR-{int(now.timestamp() * 1000)}-{uuid.uuid4().hex[:6]}"


def new_request_id(now: datetime) -> str:
    return f"REQ-{int(now.timestamp() * 1000)}-{uuid.uuid4().hex[:6]}"


@dataclass
class RideFilters:
    car_type: Optional[str] = None
    max_distance_km: Optional[float] = None
    limit: Optional[int] = None


@dataclass
class CreatedRide:
    trip: TripModel
    request: PendingRideModel


@dataclass
class NearbyRide:
    request: PendingRideModel
    distance_km: Optional[float] = None


@dataclass
class NextRides:
    assigned: Optional[TripModel] = None
    rides: list[NearbyRide] = field(default_factory=list)


@dataclass
class DriverCandidate:
    driver: DriverModel
    distance_km: float


@dataclass
class SweepResult:
    count: int = 0
    request_ids: list[str] = field(default_factory=list)


class MatchingEngine:
    def __init__(
        self,
        gateway: PersistenceGateway,
        lifecycle: TripLifecycle,
        *,
        request_ttl: timedelta = timedelta(minutes=20),
        max_assign_distance_km: float = 30.0,
        location_ttl: timedelta = timedelta(minutes=5),
        h3_resolution: int = 7,
        auto_assign: bool = False,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.gateway = gateway
        self.lifecycle = lifecycle
        self.request_ttl = request_ttl
        self.max_assign_distance_km = max_assign_distance_km
        self.location_ttl = location_ttl
        self.h3_resolution = h3_resolution
        self.auto_assign = auto_assign
        self.clock = clock

    # ── Creation ──────────────────────────────────────────────────────

    async def create(self, draft: TripDraft) -> CreatedRide:
        draft.validate()
        now = self.clock()
        async with self.gateway.unit_of_work() as uow:
            user = await uow.users.get(draft.user_id)
            if user is None:
                raise NotFound(f"Passenger {draft.user_id} not found")

            trip = await uow.trips.insert(
                TripModel(
                    id=new_trip_id(now),
                    user_id=draft.user_id,
                    pickup_location=draft.pickup_location,
                    dropoff_location=draft.dropoff_location,
                    pickup_lat=draft.pickup_lat,
                    pickup_lng=draft.pickup_lng,
                    pickup_accuracy=draft.pickup_accuracy,
                    pickup_timestamp=draft.pickup_timestamp,
                    dropoff_lat=draft.dropoff_lat,
                    dropoff_lng=draft.dropoff_lng,
                    car_type=draft.car_type,
                    cost=draft.cost,
                    distance=draft.distance,
                    duration=draft.duration,
                    payment_method=draft.payment_method,
                    status=TripStatus.PENDING.value,
                    passenger_note=draft.passenger_note,
                    source=draft.source,
                    created_at=now,
                    updated_at=now,
                )
            )
            request = await uow.pending.insert(
                PendingRideModel(
                    request_id=new_request_id(now),
                    trip_id=trip.id,
                    source=draft.source,
                    user_id=user.id,
                    passenger_name=user.name,
                    passenger_phone=user.phone,
                    pickup_location=draft.pickup_location,
                    dropoff_location=draft.dropoff_location,
                    pickup_lat=draft.pickup_lat,
                    pickup_lng=draft.pickup_lng,
                    pickup_accuracy=draft.pickup_accuracy,
                    pickup_timestamp=draft.pickup_timestamp,
                    dropoff_lat=draft.dropoff_lat,
                    dropoff_lng=draft.dropoff_lng,
                    car_type=draft.car_type,
                    estimated_cost=draft.cost,
                    estimated_distance=draft.distance,
                    estimated_duration=draft.duration,
                    payment_method=draft.payment_method,
                    status=RequestStatus.WAITING.value,
                    rejected_by=[],
                    rejection_count=0,
                    expires_at=now + self.request_ttl,
                    notes=draft.passenger_note,
                    created_at=now,
                    updated_at=now,
                )
            )
        logger.info("Trip %s created with request %s", trip.id, request.request_id)

        if self.auto_assign:
            trip = await self._auto_offer(trip)
        return CreatedRide(trip=trip, request=request)

    async def _auto_offer(self, trip: TripModel) -> TripModel:
        candidate = await self.nearest_driver(trip.pickup_lat, trip.pickup_lng, trip.car_type)
        if candidate is None:
            return trip
        try:
            return await self.lifecycle.offer(trip.id, candidate.driver.id)
        except (Conflict, InvalidTransition) as exc:
            logger.info("Auto-assign of %s to driver %s skipped: %s", trip.id, candidate.driver.id, exc)
            return trip

    # ── Driver-facing reads ───────────────────────────────────────────

    async def get_request(self, request_id: str) -> PendingRideModel:
        req = await self.gateway.read(lambda uow: uow.pending.get(request_id))
        if req is None:
            raise NotFound(f"Ride request {request_id} not found")
        return req

    async def list_for_driver(
        self, driver_id: int, filters: Optional[RideFilters] = None
    ) -> list[NearbyRide]:
        filters = filters or RideFilters()
        radius = filters.max_distance_km or self.max_assign_distance_km
        radius = min(max(radius, MIN_SEARCH_RADIUS_KM), MAX_SEARCH_RADIUS_KM)
        limit = filters.limit or DEFAULT_LIST_LIMIT
        now = self.clock()

        async def _read(uow: UnitOfWork):
            driver = await uow.drivers.get(driver_id)
            if driver is None:
                raise NotFound(f"Driver {driver_id} not found")
            waiting = await uow.pending.list_waiting(
                now=now, car_type=filters.car_type or driver.car_type
            )
            return driver, waiting

        driver, waiting = await self.gateway.read(_read)
        eligible = [r for r in waiting if driver_id not in (r.rejected_by or [])]

        if driver.last_lat is not None and driver.last_lng is not None:
            index = GeoIndex(self.h3_resolution)
            for req in eligible:
                index.add(req.id, req.pickup_lat, req.pickup_lng, req)
            hits = index.within(driver.last_lat, driver.last_lng, radius)
            rides = [NearbyRide(h.item, round(h.distance_km, 2)) for h in hits]
        else:
            # no location yet: oldest first
            rides = [NearbyRide(req) for req in eligible]
        return rides[:limit]

    async def next_for_driver(self, driver_id: int, limit: int = 1) -> NextRides:
        """The driver's current trip if they have one, else the nearest open rides."""
        assigned = await self.gateway.read(lambda uow: uow.trips.active_for_driver(driver_id))
        if assigned is not None:
            return NextRides(assigned=assigned)
        return NextRides(rides=await self.list_for_driver(driver_id, RideFilters(limit=limit)))

    async def nearest_driver(
        self, lat: float, lng: float, car_type: Optional[str] = None
    ) -> Optional[DriverCandidate]:
        """Closest online, idle driver with a fresh location, or ``None``."""
        if not all(isinstance(v, (int, float)) and math.isfinite(v) for v in (lat, lng)):
            raise ValidationError("lat and lng must be finite numbers")
        fresh_since = self.clock() - self.location_ttl

        async def _read(uow: UnitOfWork):
            drivers = await uow.drivers.list_available(fresh_since=fresh_since, car_type=car_type)
            busy = await uow.trips.busy_driver_ids()
            return drivers, busy

        drivers, busy = await self.gateway.read(_read)
        index = GeoIndex(self.h3_resolution)
        for driver in drivers:
            if driver.id not in busy:
                index.add(driver.id, driver.last_lat, driver.last_lng, driver)
        hit = index.nearest(lat, lng, radius_km=self.max_assign_distance_km)
        if hit is None:
            return None
        return DriverCandidate(driver=hit.item, distance_km=round(hit.distance_km, 2))

    # ── Decisions ─────────────────────────────────────────────────────

    async def accept(self, request_id: str, driver_id: int) -> PendingRideModel:
        async with self.gateway.unit_of_work() as uow:
            req = await self._require(uow, request_id)
            if req.status != RequestStatus.WAITING.value:
                raise Conflict("Ride request is no longer available")
            await self.lifecycle.assign_in(uow, req.trip_id, driver_id, accept_request=True)
            accepted = await uow.pending.get(request_id)
        logger.info("Request %s accepted by driver %s", request_id, driver_id)
        return accepted

    async def reject(self, request_id: str, driver_id: int) -> PendingRideModel:
        async with self.gateway.unit_of_work() as uow:
            req = await self._require(uow, request_id)
            if driver_id in (req.rejected_by or []):
                return req
            if req.status != RequestStatus.WAITING.value:
                raise Conflict("Ride request is no longer available")

            trip = await uow.trips.get(req.trip_id)
            if (
                trip is not None
                and trip.status == TripStatus.ASSIGNED.value
                and trip.driver_id == driver_id
            ):
                # offered driver declined: back to the broadcast
                await self.lifecycle.apply_in(
                    uow, trip, TripEvent.REJECT, guards={"driver_id": driver_id}
                )
            return await uow.pending.add_rejection(request_id, driver_id)

    async def cancel(self, request_id: str) -> PendingRideModel:
        async with self.gateway.unit_of_work() as uow:
            req = await self._require(uow, request_id)
            if req.status not in (RequestStatus.WAITING.value, RequestStatus.ACCEPTED.value):
                raise Conflict(f"Ride request is already {req.status}")
            trip = await uow.trips.get(req.trip_id)
            if trip is None:
                raise NotFound(f"Trip {req.trip_id} not found")
            await self.lifecycle.cancel_in(uow, trip)
            return await uow.pending.get(request_id)

    async def sweep_expired(self, now: Optional[datetime] = None) -> SweepResult:
        """Expire waiting requests past ``expires_at`` and cancel their trips.

        A trip offered to a driver who never started it goes down with its
        request.  Each request is handled in its own transaction; one that
        changed under the sweep, or could not be written, is left for the
        next run.
        """
        now = now or self.clock()
        candidates = await self.gateway.read(lambda uow: uow.pending.expired_ids(now))
        result = SweepResult()
        for request_id in candidates:
            try:
                expired = await self._expire(request_id, now)
            except (Conflict, InvalidTransition) as exc:
                logger.info("Request %s changed during sweep: %s", request_id, exc)
                continue
            except PersistenceFailure as exc:
                logger.warning("Could not expire request %s: %s", request_id, exc)
                continue
            if expired:
                result.request_ids.append(request_id)
        result.count = len(result.request_ids)
        if result.count:
            logger.info("Expired %d pending ride requests", result.count)
        return result

    async def _expire(self, request_id: str, now: datetime) -> bool:
        async with self.gateway.unit_of_work() as uow:
            req = await uow.pending.get(request_id)
            if req is None or req.status != RequestStatus.WAITING.value:
                return False
            trip = await uow.trips.get(req.trip_id)
            if trip is not None:
                if trip.status not in _UNSTARTED:
                    logger.warning(
                        "Request %s is waiting but trip %s is %s; not expiring",
                        request_id,
                        trip.id,
                        trip.status,
                    )
                    return False
                await self.lifecycle.apply_in(
                    uow, trip, TripEvent.CANCEL, now=now, guards={"driver_id": trip.driver_id}
                )
            expired = await uow.pending.update_if_status(
                request_id, RequestStatus.WAITING, {"status": RequestStatus.EXPIRED.value}
            )
            if expired is None:
                raise Conflict(f"Ride request {request_id} was modified concurrently")
            return True

    async def _require(self, uow: UnitOfWork, request_id: str) -> PendingRideModel:
        req = await uow.pending.get(request_id)
        if req is None:
            raise NotFound(f"Ride request {request_id} not found")
        return req
