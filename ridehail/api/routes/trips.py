"""
Trip endpoints
==============

POST  /api/v1/trips                      -- create a trip + its pending ride request
GET   /api/v1/trips?user_id=|driver_id=  -- list a passenger's or driver's trips
GET   /api/v1/trips/pending/next         -- driver's current trip, else nearest open rides
GET   /api/v1/trips/{trip_id}            -- fetch one trip
GET   /api/v1/trips/{trip_id}/live       -- trip + driver's last known location
PATCH /api/v1/trips/{trip_id}/assign     -- offer the trip to one driver
PATCH /api/v1/trips/{trip_id}/status     -- drive the trip state machine
PATCH /api/v1/trips/{trip_id}/reject     -- driver declines; trip back to pending
POST  /api/v1/trips/{trip_id}/end        -- complete with server-side actuals
POST  /api/v1/trips/{trip_id}/rate       -- passenger rates the driver
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from ridehail.api.dependencies import get_lifecycle, get_matching
from ridehail.api.middleware import RATE_LIMIT, limiter
from ridehail.api.schemas import (
    DriverActionRequest,
    LiveSnapshotResponse,
    NextTripResponse,
    PendingRideResponse,
    RateRequest,
    StatusUpdateRequest,
    TripCreateRequest,
    TripCreateResponse,
    TripResponse,
)
from ridehail.domain.entities import TripDraft
from ridehail.services.lifecycle import TripLifecycle
from ridehail.services.matching import MatchingEngine

router = APIRouter(prefix="/trips", tags=["trips"])


def ride_response(ride) -> PendingRideResponse:
    """Serialise a ``NearbyRide`` with its distance from the driver."""
    return PendingRideResponse.model_validate(ride.request).model_copy(
        update={"distance_km": ride.distance_km}
    )


@router.post(
    "",
    status_code=201,
    response_model=TripCreateResponse,
    summary="Create a trip",
    description="Persists a pending trip and a waiting ride request visible to drivers.",
)
@limiter.limit(RATE_LIMIT)
async def create_trip(
    request: Request,
    body: TripCreateRequest,
    matching: MatchingEngine = Depends(get_matching),
):
    created = await matching.create(TripDraft(**body.model_dump()))
    return TripCreateResponse(
        trip=TripResponse.model_validate(created.trip),
        pending_request=PendingRideResponse.model_validate(created.request),
    )


@router.get("", response_model=list[TripResponse], summary="List trips")
@limiter.limit(RATE_LIMIT)
async def list_trips(
    request: Request,
    user_id: Optional[int] = None,
    driver_id: Optional[int] = None,
    limit: int = Query(50, ge=1, le=200),
    lifecycle: TripLifecycle = Depends(get_lifecycle),
):
    if user_id is not None:
        return await lifecycle.list_for_user(user_id, limit)
    if driver_id is not None:
        return await lifecycle.list_for_driver(driver_id, limit)
    raise HTTPException(status_code=400, detail="user_id or driver_id is required")


@router.get(
    "/pending/next",
    response_model=NextTripResponse,
    summary="Next trip for a driver",
)
@limiter.limit(RATE_LIMIT)
async def next_trip(
    request: Request,
    driver_id: int,
    limit: int = Query(1, ge=1, le=20),
    matching: MatchingEngine = Depends(get_matching),
):
    nxt = await matching.next_for_driver(driver_id, limit)
    return NextTripResponse(
        assigned=TripResponse.model_validate(nxt.assigned) if nxt.assigned else None,
        rides=[ride_response(r) for r in nxt.rides],
    )


@router.get("/{trip_id}", response_model=TripResponse, summary="Get a trip")
@limiter.limit(RATE_LIMIT)
async def get_trip(
    request: Request,
    trip_id: str,
    lifecycle: TripLifecycle = Depends(get_lifecycle),
):
    return await lifecycle.get(trip_id)


@router.get(
    "/{trip_id}/live",
    response_model=LiveSnapshotResponse,
    summary="Trip with the driver's live location",
)
@limiter.limit(RATE_LIMIT)
async def live_trip(
    request: Request,
    trip_id: str,
    lifecycle: TripLifecycle = Depends(get_lifecycle),
):
    return await lifecycle.live_snapshot(trip_id)


@router.patch(
    "/{trip_id}/assign",
    response_model=TripResponse,
    summary="Offer a trip to one driver",
    description=(
        "Reserves a pending trip for the given driver.  The ride request "
        "stays waiting until that driver accepts, starts or rejects it."
    ),
)
@limiter.limit(RATE_LIMIT)
async def assign_trip(
    request: Request,
    trip_id: str,
    body: DriverActionRequest,
    lifecycle: TripLifecycle = Depends(get_lifecycle),
):
    return await lifecycle.offer(trip_id, body.driver_id)


@router.patch(
    "/{trip_id}/status",
    response_model=TripResponse,
    summary="Change trip status",
    responses={409: {"description": "Transition not allowed or lost a race"}},
)
@limiter.limit(RATE_LIMIT)
async def update_trip_status(
    request: Request,
    trip_id: str,
    body: StatusUpdateRequest,
    lifecycle: TripLifecycle = Depends(get_lifecycle),
):
    extra = body.model_dump(exclude={"status"}, exclude_none=True)
    return await lifecycle.update_status(trip_id, body.status, extra)


@router.patch("/{trip_id}/reject", response_model=TripResponse, summary="Reject a trip")
@limiter.limit(RATE_LIMIT)
async def reject_trip(
    request: Request,
    trip_id: str,
    body: DriverActionRequest,
    lifecycle: TripLifecycle = Depends(get_lifecycle),
):
    return await lifecycle.reject(trip_id, body.driver_id)


@router.post("/{trip_id}/end", response_model=TripResponse, summary="End an ongoing trip")
@limiter.limit(RATE_LIMIT)
async def end_trip(
    request: Request,
    trip_id: str,
    lifecycle: TripLifecycle = Depends(get_lifecycle),
):
    return await lifecycle.complete(trip_id)


@router.post("/{trip_id}/rate", response_model=TripResponse, summary="Rate the driver")
@limiter.limit(RATE_LIMIT)
async def rate_trip(
    request: Request,
    trip_id: str,
    body: RateRequest,
    lifecycle: TripLifecycle = Depends(get_lifecycle),
):
    return await lifecycle.rate(trip_id, body.rating, body.review)
