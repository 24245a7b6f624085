"""
TripLifecycle
=============

The state machine behind a trip's ``status`` / ``trip_status`` columns::

    pending --assign--> assigned --start--> ongoing --complete--> completed --rate--> completed(rated)
       ^                  |
       +------reject------+
    pending | assigned | ongoing --cancel--> cancelled

Every write is a conditional update on the status that was read, so two
callers racing on the same trip cannot both win: the loser gets
``Conflict``.  The correlated pending ride request is updated in the same
transaction, always after the trip.

Side effects (earnings settlement, dashboard counters, realtime events)
run only after the state write has committed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Optional

from ridehail.domain.clock import as_utc, utcnow
from ridehail.domain.distance import haversine_km, path_km
from ridehail.domain.entities import Rating, load_state, state_columns, transition
from ridehail.domain.enums import RequestStatus, TripEvent, TripPhase, TripStatus
from ridehail.domain.errors import Conflict, NotFound, PersistenceFailure, ValidationError
from ridehail.domain.pricing import CompletionPricing, QuotedFarePricing
from ridehail.infrastructure.gateway import PersistenceGateway, UnitOfWork
from ridehail.infrastructure.models import TripModel
from ridehail.services import notifications
from ridehail.services.earnings import EarningsSync
from ridehail.services.notifications import NotificationBridge

logger = logging.getLogger(__name__)


@dataclass
class LiveSnapshot:
    trip: TripModel
    driver_last_lat: Optional[float] = None
    driver_last_lng: Optional[float] = None
    driver_last_location_at: Optional[datetime] = None
    driver_name: Optional[str] = None
    driver_status: Optional[str] = None


class TripLifecycle:
    def __init__(
        self,
        gateway: PersistenceGateway,
        earnings: EarningsSync,
        bridge: NotificationBridge,
        *,
        pricing: Optional[CompletionPricing] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.gateway = gateway
        self.earnings = earnings
        self.bridge = bridge
        self.pricing = pricing or QuotedFarePricing()
        self.clock = clock

    # ── Reads ─────────────────────────────────────────────────────────

    async def get(self, trip_id: str) -> TripModel:
        trip = await self.gateway.read(lambda uow: uow.trips.get(trip_id))
        if trip is None:
            raise NotFound(f"Trip {trip_id} not found")
        return trip

    async def list_for_user(self, user_id: int, limit: int = 50) -> list[TripModel]:
        return await self.gateway.read(lambda uow: uow.trips.list_by_user(user_id, limit))

    async def list_for_driver(self, driver_id: int, limit: int = 50) -> list[TripModel]:
        return await self.gateway.read(
            lambda uow: uow.trips.list_by_driver(driver_id, limit=limit)
        )

    async def live_snapshot(self, trip_id: str) -> LiveSnapshot:
        async def _read(uow: UnitOfWork) -> LiveSnapshot:
            trip = await uow.trips.get(trip_id)
            if trip is None:
                raise NotFound(f"Trip {trip_id} not found")
            snapshot = LiveSnapshot(trip=trip)
            if trip.driver_id is not None:
                driver = await uow.drivers.get(trip.driver_id)
                if driver is not None:
                    snapshot.driver_last_lat = driver.last_lat
                    snapshot.driver_last_lng = driver.last_lng
                    snapshot.driver_last_location_at = driver.last_location_at
                    snapshot.driver_name = driver.name
                    snapshot.driver_status = driver.status
            return snapshot

        return await self.gateway.read(_read)

    # ── Public mutator ────────────────────────────────────────────────

    async def update_status(
        self, trip_id: str, new_status: str, extra: Optional[dict[str, Any]] = None
    ) -> TripModel:
        """Drive the trip towards *new_status*; *extra* carries event arguments."""
        extra = extra or {}
        try:
            status = TripStatus(new_status)
        except ValueError:
            raise ValidationError(f"Unknown trip status {new_status!r}") from None

        driver_id = extra.get("driver_id")
        if status is TripStatus.ASSIGNED:
            if driver_id is None:
                raise ValidationError("driver_id is required to assign a trip")
            return await self.assign(trip_id, driver_id)
        if status is TripStatus.ONGOING:
            return await self.start(trip_id, driver_id=driver_id)
        if status is TripStatus.PENDING:
            if driver_id is None:
                raise ValidationError("driver_id is required to reject a trip")
            return await self.reject(trip_id, driver_id)
        if status is TripStatus.CANCELLED:
            return await self.cancel(trip_id)
        if extra.get("rating") is not None or extra.get("trip_status") == TripPhase.RATED.value:
            return await self.rate(trip_id, extra.get("rating"), extra.get("review"))
        return await self.complete(trip_id)

    # ── Transitions ───────────────────────────────────────────────────

    async def assign(self, trip_id: str, driver_id: int) -> TripModel:
        """Assign and mark the pending request accepted."""
        async with self.gateway.unit_of_work() as uow:
            return await self.assign_in(uow, trip_id, driver_id, accept_request=True)

    async def offer(self, trip_id: str, driver_id: int) -> TripModel:
        """Direct-assign: reserve the trip for one driver, request stays waiting."""
        async with self.gateway.unit_of_work() as uow:
            return await self.assign_in(uow, trip_id, driver_id, accept_request=False)

    async def start(self, trip_id: str, driver_id: Optional[int] = None) -> TripModel:
        now = self.clock()
        async with self.gateway.unit_of_work() as uow:
            trip = await self._require(uow, trip_id)
            if driver_id is not None and trip.driver_id not in (None, driver_id):
                raise Conflict("Trip is assigned to another driver")
            updated = await self.apply_in(
                uow, trip, TripEvent.START, now=now, guards={"driver_id": trip.driver_id}
            )
            req = await uow.pending.get_by_trip(trip_id)
            if req is not None and req.status == RequestStatus.WAITING.value:
                # offered trip started without an explicit accept
                accepted = await uow.pending.update_if_status(
                    req.request_id,
                    RequestStatus.WAITING,
                    {
                        "status": RequestStatus.ACCEPTED.value,
                        "assigned_driver_id": updated.driver_id,
                        "assigned_at": now,
                    },
                )
                if accepted is None:
                    logger.warning("Trip %s started but request %s changed", trip_id, req.request_id)

        await self.bridge.emit(
            notifications.TRIP_STARTED,
            trip_id,
            status=updated.status,
            trip_status=updated.trip_status,
            started_at=updated.started_at,
            driver_id=updated.driver_id,
        )
        return updated

    async def reject(self, trip_id: str, driver_id: int) -> TripModel:
        """Driver declines a trip; it goes back to pending for re-matching."""
        async with self.gateway.unit_of_work() as uow:
            trip = await self._require(uow, trip_id)
            if trip.status == TripStatus.ASSIGNED.value and trip.driver_id != driver_id:
                raise Conflict("Trip is assigned to another driver")
            req = await uow.pending.get_by_trip(trip_id)
            if req is not None and req.status != RequestStatus.WAITING.value:
                raise Conflict(
                    f"Ride request is already {req.status}; cancel the trip instead"
                )
            updated = await self.apply_in(
                uow, trip, TripEvent.REJECT, guards={"driver_id": trip.driver_id}
            )
            if req is not None:
                await uow.pending.add_rejection(req.request_id, driver_id)
            return updated

    async def cancel(self, trip_id: str) -> TripModel:
        async with self.gateway.unit_of_work() as uow:
            trip = await self._require(uow, trip_id)
            return await self.cancel_in(uow, trip)

    async def complete(self, trip_id: str) -> TripModel:
        """Finish an ongoing trip.  Completing a completed trip is a no-op."""
        now = self.clock()
        try:
            async with self.gateway.unit_of_work() as uow:
                trip = await self._require(uow, trip_id)
                if trip.status == TripStatus.COMPLETED.value:
                    logger.info("Trip %s already completed; ignoring repeat", trip_id)
                    return trip
                patch = {}
                if trip.status == TripStatus.ONGOING.value:
                    patch = await self._actuals(uow, trip, now)
                updated = await self.apply_in(
                    uow,
                    trip,
                    TripEvent.COMPLETE,
                    now=now,
                    patch=patch,
                    guards={"driver_id": trip.driver_id},
                )
                req = await uow.pending.get_by_trip(trip_id)
                if req is not None:
                    done = await uow.pending.update_if_status(
                        req.request_id,
                        RequestStatus.ACCEPTED,
                        {"status": RequestStatus.COMPLETED.value},
                    )
                    if done is None:
                        logger.warning(
                            "Trip %s completed but request %s is %s",
                            trip_id,
                            req.request_id,
                            req.status,
                        )
        except Conflict:
            current = await self.get(trip_id)
            if current.status == TripStatus.COMPLETED.value:
                return current
            raise

        await self._after_completion(updated, now)
        return updated

    async def rate(self, trip_id: str, score: Any, review: Optional[str] = None) -> TripModel:
        if not isinstance(score, (int, float)) or not 1 <= score <= 5:
            raise ValidationError("rating must be between 1 and 5")
        rating = Rating(int(score), review or None)
        async with self.gateway.unit_of_work() as uow:
            trip = await self._require(uow, trip_id)
            updated = await self.apply_in(
                uow,
                trip,
                TripEvent.RATE,
                rating=rating,
                guards={"trip_status": TripPhase.COMPLETED.value},
            )
            if updated.driver_id is not None:
                await uow.drivers.record_rating(updated.driver_id, rating.score)

        await self.bridge.emit(
            notifications.TRIP_RATED,
            trip_id,
            status=updated.status,
            trip_status=updated.trip_status,
            rating=updated.rating,
        )
        return updated

    # ── Building blocks shared with MatchingEngine ────────────────────

    async def apply_in(
        self,
        uow: UnitOfWork,
        trip: TripModel,
        event: TripEvent,
        *,
        now: Optional[datetime] = None,
        patch: Optional[dict[str, Any]] = None,
        driver_id: Optional[int] = None,
        rating: Optional[Rating] = None,
        guards: Optional[dict[str, Any]] = None,
    ) -> TripModel:
        """Validate *event* against the trip's state and write it conditionally."""
        state = transition(
            load_state(trip),
            event,
            now=now or self.clock(),
            driver_id=driver_id,
            rating=rating,
        )
        columns = {**state_columns(state), **(patch or {})}
        updated = await uow.trips.update_if_status(
            trip.id, trip.status, columns, **(guards or {})
        )
        if updated is None:
            raise Conflict(f"Trip {trip.id} was modified concurrently; re-fetch and retry")
        return updated

    async def assign_in(
        self,
        uow: UnitOfWork,
        trip_id: str,
        driver_id: int,
        *,
        accept_request: bool,
    ) -> TripModel:
        now = self.clock()
        trip = await self._require(uow, trip_id)
        driver = await uow.drivers.get(driver_id)
        if driver is None:
            raise NotFound(f"Driver {driver_id} not found")
        req = await uow.pending.get_by_trip(trip_id)
        if req is not None and driver_id in (req.rejected_by or []):
            raise Conflict("Driver already declined this ride")

        if trip.status == TripStatus.ASSIGNED.value:
            if trip.driver_id != driver_id:
                raise Conflict("Ride is no longer available")
            updated = trip
        else:
            try:
                updated = await self.apply_in(
                    uow,
                    trip,
                    TripEvent.ASSIGN,
                    now=now,
                    driver_id=driver_id,
                    patch={"driver_name": driver.name},
                )
            except Conflict:
                raise Conflict("Ride is no longer available") from None

        if accept_request and req is not None:
            already_ours = (
                req.status == RequestStatus.ACCEPTED.value
                and req.assigned_driver_id == driver_id
            )
            if not already_ours:
                accepted = await uow.pending.update_if_status(
                    req.request_id,
                    RequestStatus.WAITING,
                    {
                        "status": RequestStatus.ACCEPTED.value,
                        "assigned_driver_id": driver_id,
                        "assigned_at": now,
                    },
                )
                if accepted is None:
                    raise Conflict("Ride request is no longer available")
        return updated

    async def cancel_in(self, uow: UnitOfWork, trip: TripModel) -> TripModel:
        updated = await self.apply_in(uow, trip, TripEvent.CANCEL)
        req = await uow.pending.get_by_trip(trip.id)
        open_states = (RequestStatus.WAITING, RequestStatus.ACCEPTED)
        if req is not None and req.status in {s.value for s in open_states}:
            cancelled = await uow.pending.update_if_status(
                req.request_id, open_states, {"status": RequestStatus.CANCELLED.value}
            )
            if cancelled is None:
                raise Conflict(f"Ride request {req.request_id} was modified concurrently")
        return updated

    # ── Internals ─────────────────────────────────────────────────────

    async def _require(self, uow: UnitOfWork, trip_id: str) -> TripModel:
        trip = await uow.trips.get(trip_id)
        if trip is None:
            raise NotFound(f"Trip {trip_id} not found")
        return trip

    async def _actuals(self, uow: UnitOfWork, trip: TripModel, now: datetime) -> dict[str, Any]:
        """Server-side distance, duration and cost for a finishing trip."""
        started = as_utc(trip.started_at) or as_utc(trip.created_at) or now
        duration = max(1, round((now - started).total_seconds() / 60))
        path = await uow.locations.path(trip.id)
        if len(path) >= 2:
            distance = path_km(path)
        else:
            distance = haversine_km(
                trip.pickup_lat, trip.pickup_lng, trip.dropoff_lat, trip.dropoff_lng
            )
        distance = round(distance, 1)
        cost = self.pricing.final_cost(
            car_type=trip.car_type,
            quoted=trip.cost,
            distance_km=distance,
            duration_min=duration,
        )
        return {"distance": distance, "duration": duration, "cost": cost}

    async def _after_completion(self, trip: TripModel, now: datetime) -> None:
        if trip.driver_id is not None:
            await self.earnings.settle_trip(trip.id, trip.driver_id, trip.cost or 0.0)
        else:
            logger.warning("Trip %s completed without a driver; no earnings recorded", trip.id)

        try:
            async with self.gateway.unit_of_work() as uow:
                await uow.counters.bump_day(now.date(), trip.cost or 0.0, trip.distance or 0.0, now)
        except PersistenceFailure as exc:
            logger.warning("Daily counters not updated for trip %s: %s", trip.id, exc)

        await self.bridge.emit(
            notifications.TRIP_COMPLETED,
            trip.id,
            status=trip.status,
            trip_status=trip.trip_status,
            completed_at=trip.completed_at,
            duration=trip.duration,
            distance=trip.distance,
            cost=trip.cost,
        )
