"""
Pending ride endpoints
======================

GET  /api/v1/pending-rides/{request_id}         -- fetch one request
POST /api/v1/pending-rides/{request_id}/accept  -- first driver to commit wins (409 otherwise)
POST /api/v1/pending-rides/{request_id}/reject  -- idempotent per driver
POST /api/v1/pending-rides/{request_id}/cancel  -- waiting|accepted -> cancelled
POST /api/v1/pending-rides/cleanup              -- expire stale waiting requests
"""

from fastapi import APIRouter, Depends, Request

from ridehail.api.dependencies import get_matching
from ridehail.api.middleware import RATE_LIMIT, limiter
from ridehail.api.schemas import DriverActionRequest, PendingRideResponse, SweepResponse
from ridehail.services.matching import MatchingEngine

router = APIRouter(prefix="/pending-rides", tags=["pending-rides"])


@router.post("/cleanup", response_model=SweepResponse, summary="Expire stale requests")
@limiter.limit(RATE_LIMIT)
async def cleanup(
    request: Request,
    matching: MatchingEngine = Depends(get_matching),
):
    result = await matching.sweep_expired()
    return SweepResponse(count=result.count, request_ids=result.request_ids)


@router.get("/{request_id}", response_model=PendingRideResponse, summary="Get a ride request")
@limiter.limit(RATE_LIMIT)
async def get_pending_ride(
    request: Request,
    request_id: str,
    matching: MatchingEngine = Depends(get_matching),
):
    return await matching.get_request(request_id)


@router.post(
    "/{request_id}/accept",
    response_model=PendingRideResponse,
    summary="Accept a ride request",
    responses={409: {"description": "Ride request is no longer available"}},
)
@limiter.limit(RATE_LIMIT)
async def accept_pending_ride(
    request: Request,
    request_id: str,
    body: DriverActionRequest,
    matching: MatchingEngine = Depends(get_matching),
):
    return await matching.accept(request_id, body.driver_id)


@router.post(
    "/{request_id}/reject",
    response_model=PendingRideResponse,
    summary="Reject a ride request",
)
@limiter.limit(RATE_LIMIT)
async def reject_pending_ride(
    request: Request,
    request_id: str,
    body: DriverActionRequest,
    matching: MatchingEngine = Depends(get_matching),
):
    return await matching.reject(request_id, body.driver_id)


@router.post(
    "/{request_id}/cancel",
    response_model=PendingRideResponse,
    summary="Cancel a ride request and its trip",
)
@limiter.limit(RATE_LIMIT)
async def cancel_pending_ride(
    request: Request,
    request_id: str,
    matching: MatchingEngine = Depends(get_matching),
):
    return await matching.cancel(request_id)
