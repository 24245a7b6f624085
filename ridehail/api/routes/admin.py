"""
Admin / observability endpoints
===============================

GET  /api/v1/admin/health              -- simple health check
POST /api/v1/admin/earnings/sync-all   -- rewrite every driver's ledger row for today
POST /api/v1/admin/earnings/reset-daily
GET  /api/v1/admin/daily-counters?day= -- trips / revenue / distance for one day
"""

import datetime as dt
from typing import Optional

from fastapi import APIRouter, Depends, Request

from ridehail.api.dependencies import get_earnings, get_services
from ridehail.api.middleware import RATE_LIMIT, limiter
from ridehail.api.schemas import (
    DailyCountersResponse,
    HealthResponse,
    ResetResponse,
    SyncAllResponse,
)
from ridehail.services.container import Services
from ridehail.services.earnings import EarningsSync

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post(
    "/earnings/sync-all",
    response_model=SyncAllResponse,
    summary="Reconcile every driver's earnings record",
)
@limiter.limit(RATE_LIMIT)
async def sync_all(
    request: Request,
    earnings: EarningsSync = Depends(get_earnings),
):
    summary = await earnings.reconcile_all()
    return SyncAllResponse(synced=summary.synced, failed=summary.failed)


@router.post(
    "/earnings/reset-daily",
    response_model=ResetResponse,
    summary="Zero today's counters for drivers not yet reset",
)
@limiter.limit(RATE_LIMIT)
async def reset_daily(
    request: Request,
    earnings: EarningsSync = Depends(get_earnings),
):
    return ResetResponse(reset=await earnings.reset_daily())


@router.get(
    "/daily-counters",
    response_model=DailyCountersResponse,
    summary="Daily trip counters",
)
@limiter.limit(RATE_LIMIT)
async def daily_counters(
    request: Request,
    day: Optional[dt.date] = None,
    services: Services = Depends(get_services),
):
    day = day or services.lifecycle.clock().date()
    row = await services.gateway.read(lambda uow: uow.counters.get(day))
    if row is None:
        return DailyCountersResponse(day=day)
    return DailyCountersResponse(
        day=row.day,
        trips=row.trips,
        revenue=round(row.revenue, 2),
        distance=round(row.distance, 2),
    )


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health():
    return HealthResponse()
