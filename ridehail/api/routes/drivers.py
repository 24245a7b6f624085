"""
Driver endpoints
================

GET   /api/v1/drivers/nearest?lat=&lng=&car_type=  -- closest idle online driver
GET   /api/v1/drivers/{driver_id}                  -- driver profile
GET   /api/v1/drivers/{driver_id}/pending-rides    -- open requests near the driver
PATCH /api/v1/drivers/{driver_id}/location         -- location ping
PATCH /api/v1/drivers/{driver_id}/status           -- online / offline
GET   /api/v1/drivers/{driver_id}/stats            -- counters + recent trips
GET   /api/v1/drivers/{driver_id}/earnings?days=   -- dated earnings ledger
GET   /api/v1/drivers/{driver_id}/earnings/audit   -- counters vs completed trips
POST  /api/v1/drivers/{driver_id}/sync             -- rewrite today's ledger row
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from ridehail.api.dependencies import get_drivers, get_earnings, get_matching
from ridehail.api.middleware import RATE_LIMIT, limiter
from ridehail.api.routes.trips import ride_response
from ridehail.api.schemas import (
    DriverResponse,
    DriverStatsResponse,
    DriverStatusRequest,
    EarningsAuditResponse,
    EarningsRecordResponse,
    EarningsSummary,
    LocationUpdateRequest,
    NearestDriverResponse,
    PendingRideResponse,
    TripCounts,
    TripResponse,
)
from ridehail.domain.errors import NotFound
from ridehail.services.drivers import DriverService
from ridehail.services.earnings import EarningsSync
from ridehail.services.matching import MatchingEngine, RideFilters

router = APIRouter(prefix="/drivers", tags=["drivers"])


@router.get(
    "/nearest",
    response_model=NearestDriverResponse,
    summary="Find the nearest available driver",
    responses={404: {"description": "No driver within range"}},
)
@limiter.limit(RATE_LIMIT)
async def nearest_driver(
    request: Request,
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    car_type: Optional[str] = None,
    matching: MatchingEngine = Depends(get_matching),
):
    candidate = await matching.nearest_driver(lat, lng, car_type)
    if candidate is None:
        raise NotFound("No available driver nearby")
    d = candidate.driver
    return NearestDriverResponse(
        driver_id=d.id,
        name=d.name,
        car_type=d.car_type,
        distance_km=candidate.distance_km,
        last_lat=d.last_lat,
        last_lng=d.last_lng,
    )


@router.get("/{driver_id}", response_model=DriverResponse, summary="Get a driver")
@limiter.limit(RATE_LIMIT)
async def get_driver(
    request: Request,
    driver_id: int,
    drivers: DriverService = Depends(get_drivers),
):
    return await drivers.get(driver_id)


@router.get(
    "/{driver_id}/pending-rides",
    response_model=list[PendingRideResponse],
    summary="Open ride requests for a driver",
    description=(
        "Waiting requests matching the driver's car type (or ``car_type``), "
        "excluding ones the driver rejected, nearest first. ``max_distance_km`` "
        "defaults to the assignment radius and is clamped to 1-100 km; at most "
        "30 rides unless ``limit`` says otherwise."
    ),
)
@limiter.limit(RATE_LIMIT)
async def pending_rides(
    request: Request,
    driver_id: int,
    car_type: Optional[str] = None,
    max_distance_km: Optional[float] = Query(None, gt=0),
    limit: Optional[int] = Query(None, ge=1, le=100),
    matching: MatchingEngine = Depends(get_matching),
):
    filters = RideFilters(car_type=car_type, max_distance_km=max_distance_km, limit=limit)
    rides = await matching.list_for_driver(driver_id, filters)
    return [ride_response(r) for r in rides]


@router.patch("/{driver_id}/location", response_model=DriverResponse, summary="Update location")
@limiter.limit(RATE_LIMIT)
async def update_location(
    request: Request,
    driver_id: int,
    body: LocationUpdateRequest,
    drivers: DriverService = Depends(get_drivers),
):
    return await drivers.update_location(driver_id, body.lat, body.lng)


@router.patch("/{driver_id}/status", response_model=DriverResponse, summary="Go online / offline")
@limiter.limit(RATE_LIMIT)
async def update_status(
    request: Request,
    driver_id: int,
    body: DriverStatusRequest,
    drivers: DriverService = Depends(get_drivers),
):
    return await drivers.set_status(driver_id, body.status)


@router.get("/{driver_id}/stats", response_model=DriverStatsResponse, summary="Driver stats")
@limiter.limit(RATE_LIMIT)
async def driver_stats(
    request: Request,
    driver_id: int,
    recent: int = Query(10, ge=0, le=50),
    drivers: DriverService = Depends(get_drivers),
):
    stats = await drivers.stats(driver_id, recent)
    d = stats.driver
    return DriverStatsResponse(
        driver=DriverResponse.model_validate(d),
        earnings=EarningsSummary(
            total=round(d.total_earnings, 2),
            balance=round(d.balance, 2),
            today=round(d.today_earnings, 2),
        ),
        trips=TripCounts(
            total=d.total_trips,
            today=d.today_trips_count,
            completed=stats.completed_trips,
        ),
        recent_trips=[TripResponse.model_validate(t) for t in stats.recent_trips],
    )


@router.get(
    "/{driver_id}/earnings",
    response_model=list[EarningsRecordResponse],
    summary="Earnings history",
)
@limiter.limit(RATE_LIMIT)
async def earnings_history(
    request: Request,
    driver_id: int,
    days: int = Query(30, ge=1, le=366),
    earnings: EarningsSync = Depends(get_earnings),
):
    return await earnings.history(driver_id, days)


@router.get(
    "/{driver_id}/earnings/audit",
    response_model=EarningsAuditResponse,
    summary="Compare counters with completed trips",
)
@limiter.limit(RATE_LIMIT)
async def earnings_audit(
    request: Request,
    driver_id: int,
    earnings: EarningsSync = Depends(get_earnings),
):
    return await earnings.audit(driver_id)


@router.post(
    "/{driver_id}/sync",
    response_model=EarningsRecordResponse,
    summary="Sync today's earnings record",
)
@limiter.limit(RATE_LIMIT)
async def sync_earnings(
    request: Request,
    driver_id: int,
    earnings: EarningsSync = Depends(get_earnings),
):
    return await earnings.reconcile(driver_id)
