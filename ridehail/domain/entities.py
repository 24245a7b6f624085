"""
Domain entities with business logic.

Patterns used
-------------
- **Tagged state** for trips: ``Pending | Assigned | Ongoing | Completed |
  Cancelled``.  The store keeps the legacy pair of columns (``status`` and
  ``trip_status``); ``load_state`` / ``state_columns`` translate at the
  persistence boundary so contradictory pairs such as
  ``status=pending, trip_status=completed`` cannot be produced.
- ``transition`` enforces ``TRIP_TRANSITIONS`` and builds the next state.
- ``TripDraft.validate`` guards trip creation.
- ``check_request_move`` enforces ``REQUEST_TRANSITIONS`` for pending
  ride requests; the repository calls it before every status write.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Optional, Union

from .clock import as_utc
from .enums import (
    REQUEST_TRANSITIONS,
    TRIP_TRANSITIONS,
    CarType,
    RequestStatus,
    TripEvent,
    TripPhase,
    TripStatus,
)
from .errors import InvalidTransition, ValidationError


# ── Value Objects ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class Rating:
    score: int
    review: Optional[str] = None

    def __post_init__(self):
        if not 1 <= self.score <= 5:
            raise ValidationError("rating must be between 1 and 5")


@dataclass
class TripDraft:
    """Passenger input for a new trip, before anything is persisted."""

    user_id: int
    pickup_location: str
    dropoff_location: str
    pickup_lat: Optional[float]
    pickup_lng: Optional[float]
    dropoff_lat: Optional[float]
    dropoff_lng: Optional[float]
    car_type: str = CarType.ECONOMY.value
    cost: Optional[float] = None
    distance: Optional[float] = None
    duration: Optional[int] = None
    payment_method: str = "cash"
    pickup_accuracy: Optional[float] = None
    pickup_timestamp: Optional[datetime] = None
    passenger_note: Optional[str] = None
    source: str = "passenger_app"

    def validate(self) -> None:
        if not self.pickup_location or not self.dropoff_location:
            raise ValidationError("pickup and dropoff locations are required")
        for name in ("pickup_lat", "pickup_lng", "dropoff_lat", "dropoff_lng"):
            if not _finite(getattr(self, name)):
                raise ValidationError(f"{name} must be a finite number")
        if not -90 <= self.pickup_lat <= 90 or not -90 <= self.dropoff_lat <= 90:
            raise ValidationError("latitude out of range")
        if not -180 <= self.pickup_lng <= 180 or not -180 <= self.dropoff_lng <= 180:
            raise ValidationError("longitude out of range")
        if self.pickup_accuracy is not None and not _finite(self.pickup_accuracy):
            raise ValidationError("pickup_accuracy must be a finite number")
        if self.car_type not in {c.value for c in CarType}:
            raise ValidationError(f"unknown car_type {self.car_type!r}")
        if not _finite(self.cost) or self.cost < 0:
            raise ValidationError("cost must be a non-negative number")


def _finite(value: Any) -> bool:
    return isinstance(value, (int, float)) and math.isfinite(value)


# ── Trip state ────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Pending:
    pass


@dataclass(frozen=True)
class Assigned:
    driver_id: int


@dataclass(frozen=True)
class Ongoing:
    driver_id: Optional[int]
    started_at: datetime


@dataclass(frozen=True)
class Completed:
    driver_id: Optional[int]
    completed_at: datetime
    rating: Optional[Rating] = None


@dataclass(frozen=True)
class Cancelled:
    cancelled_at: datetime


TripState = Union[Pending, Assigned, Ongoing, Completed, Cancelled]

_STATUS_OF = {
    Pending: TripStatus.PENDING,
    Assigned: TripStatus.ASSIGNED,
    Ongoing: TripStatus.ONGOING,
    Completed: TripStatus.COMPLETED,
    Cancelled: TripStatus.CANCELLED,
}


def status_of(state: TripState) -> TripStatus:
    return _STATUS_OF[type(state)]


def load_state(row) -> TripState:
    """Build the tagged state from a persisted trip row."""
    status = TripStatus(row.status)
    if status is TripStatus.PENDING:
        return Pending()
    if status is TripStatus.ASSIGNED:
        return Assigned(row.driver_id)
    if status is TripStatus.ONGOING:
        return Ongoing(row.driver_id, as_utc(row.started_at or row.created_at))
    if status is TripStatus.COMPLETED:
        rating = None
        if row.trip_status == TripPhase.RATED.value and row.rating is not None:
            rating = Rating(int(row.rating), row.review)
        return Completed(row.driver_id, as_utc(row.completed_at), rating)
    return Cancelled(as_utc(row.cancelled_at))


def state_columns(state: TripState) -> dict[str, Any]:
    """Translate a tagged state into the legacy ``status``/``trip_status`` columns."""
    if isinstance(state, Pending):
        return {
            "status": TripStatus.PENDING.value,
            "trip_status": None,
            "driver_id": None,
            "driver_name": None,
        }
    if isinstance(state, Assigned):
        return {"status": TripStatus.ASSIGNED.value, "driver_id": state.driver_id}
    if isinstance(state, Ongoing):
        return {
            "status": TripStatus.ONGOING.value,
            "trip_status": TripPhase.STARTED.value,
            "started_at": state.started_at,
        }
    if isinstance(state, Completed):
        columns = {
            "status": TripStatus.COMPLETED.value,
            "trip_status": TripPhase.COMPLETED.value,
            "completed_at": state.completed_at,
        }
        if state.rating is not None:
            columns.update(
                trip_status=TripPhase.RATED.value,
                rating=state.rating.score,
                review=state.rating.review,
            )
        return columns
    return {"status": TripStatus.CANCELLED.value, "cancelled_at": state.cancelled_at}


def transition(
    state: TripState,
    event: TripEvent,
    *,
    now: datetime,
    driver_id: Optional[int] = None,
    rating: Optional[Rating] = None,
) -> TripState:
    """Return the state reached by applying *event*, or raise."""
    current = status_of(state)
    if event not in TRIP_TRANSITIONS[current]:
        if event is TripEvent.RATE:
            raise InvalidTransition("Only completed trips can be rated")
        raise InvalidTransition(f"Cannot {event.value} a trip that is {current.value}")

    if event is TripEvent.ASSIGN:
        if driver_id is None:
            raise ValidationError("driver_id is required to assign a trip")
        return Assigned(driver_id)
    if event is TripEvent.START:
        return Ongoing(state.driver_id, now)
    if event is TripEvent.REJECT:
        return Pending()
    if event is TripEvent.CANCEL:
        return Cancelled(now)
    if event is TripEvent.COMPLETE:
        return Completed(state.driver_id, now)

    # RATE
    if state.rating is not None:
        raise InvalidTransition("Trip has already been rated")
    if rating is None:
        raise ValidationError("rating is required")
    return Completed(state.driver_id, state.completed_at, rating)


# ── Pending ride request ──────────────────────────────────────────────


def check_request_move(current: Iterable[str], target: str) -> None:
    """Raise unless every status in *current* may move to *target*."""
    try:
        target_status = RequestStatus(target)
    except ValueError:
        raise ValidationError(f"Unknown request status {target!r}") from None
    for status in current:
        if target_status not in REQUEST_TRANSITIONS[RequestStatus(status)]:
            raise InvalidTransition(
                f"Ride request cannot move from {status} to {target_status.value}"
            )
