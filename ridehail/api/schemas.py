"""Pydantic request / response schemas for the REST API."""

from __future__ import annotations

import datetime as dt
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


# ── Requests ──────────────────────────────────────────────────────────


class TripCreateRequest(BaseModel):
    user_id: int
    pickup_location: str = Field(..., min_length=1, max_length=500)
    dropoff_location: str = Field(..., min_length=1, max_length=500)
    pickup_lat: float = Field(..., ge=-90, le=90)
    pickup_lng: float = Field(..., ge=-180, le=180)
    dropoff_lat: float = Field(..., ge=-90, le=90)
    dropoff_lng: float = Field(..., ge=-180, le=180)
    pickup_accuracy: Optional[float] = Field(None, ge=0, description="GPS accuracy in metres")
    pickup_timestamp: Optional[datetime] = None
    car_type: str = "economy"
    cost: float = Field(..., ge=0, description="Quoted fare shown to the passenger")
    distance: Optional[float] = Field(None, ge=0, description="Estimated km")
    duration: Optional[int] = Field(None, ge=0, description="Estimated minutes")
    payment_method: str = Field("cash", max_length=20)
    passenger_note: Optional[str] = Field(None, max_length=500)
    source: str = Field("passenger_app", max_length=40)


class DriverActionRequest(BaseModel):
    driver_id: int


class StatusUpdateRequest(BaseModel):
    status: str = Field(..., description="pending | assigned | ongoing | completed | cancelled")
    driver_id: Optional[int] = None
    trip_status: Optional[str] = None
    rating: Optional[float] = None
    review: Optional[str] = Field(None, max_length=1000)


class RateRequest(BaseModel):
    rating: float
    review: Optional[str] = Field(None, max_length=1000)


class LocationUpdateRequest(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class DriverStatusRequest(BaseModel):
    status: str = Field(..., description="online | offline")


# ── Responses ─────────────────────────────────────────────────────────


class TripResponse(BaseModel):
    id: str
    user_id: int
    driver_id: Optional[int] = None
    driver_name: Optional[str] = None
    pickup_location: str
    dropoff_location: str
    pickup_lat: float
    pickup_lng: float
    pickup_accuracy: Optional[float] = None
    dropoff_lat: float
    dropoff_lng: float
    car_type: str
    cost: Optional[float] = None
    distance: Optional[float] = None
    duration: Optional[int] = None
    payment_method: str
    status: str
    trip_status: Optional[str] = None
    rating: Optional[int] = None
    review: Optional[str] = None
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class PendingRideResponse(BaseModel):
    request_id: str
    trip_id: str
    user_id: int
    passenger_name: Optional[str] = None
    passenger_phone: Optional[str] = None
    pickup_location: str
    dropoff_location: str
    pickup_lat: float
    pickup_lng: float
    dropoff_lat: float
    dropoff_lng: float
    car_type: str
    estimated_cost: float
    estimated_distance: Optional[float] = None
    estimated_duration: Optional[int] = None
    payment_method: str
    status: str
    assigned_driver_id: Optional[int] = None
    assigned_at: Optional[datetime] = None
    rejected_by: list[int] = []
    rejection_count: int = 0
    expires_at: datetime
    created_at: Optional[datetime] = None
    distance_km: Optional[float] = None

    model_config = {"from_attributes": True}


class TripCreateResponse(BaseModel):
    trip: TripResponse
    pending_request: PendingRideResponse


class NextTripResponse(BaseModel):
    assigned: Optional[TripResponse] = None
    rides: list[PendingRideResponse] = []


class LiveSnapshotResponse(BaseModel):
    trip: TripResponse
    driver_last_lat: Optional[float] = None
    driver_last_lng: Optional[float] = None
    driver_last_location_at: Optional[datetime] = None
    driver_name: Optional[str] = None
    driver_status: Optional[str] = None

    model_config = {"from_attributes": True}


class DriverResponse(BaseModel):
    id: int
    name: str
    phone: str
    car_type: str
    car_plate: Optional[str] = None
    status: str
    rating: float
    last_lat: Optional[float] = None
    last_lng: Optional[float] = None
    last_location_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class NearestDriverResponse(BaseModel):
    driver_id: int
    name: str
    car_type: str
    distance_km: float
    last_lat: float
    last_lng: float


class EarningsSummary(BaseModel):
    total: float
    balance: float
    today: float


class TripCounts(BaseModel):
    total: int
    today: int
    completed: int


class DriverStatsResponse(BaseModel):
    driver: DriverResponse
    earnings: EarningsSummary
    trips: TripCounts
    recent_trips: list[TripResponse] = []


class EarningsRecordResponse(BaseModel):
    driver_id: int
    date: dt.date
    today_trips: int
    today_earnings: float
    total_trips: int
    total_earnings: float

    model_config = {"from_attributes": True}


class EarningsAuditResponse(BaseModel):
    driver_id: int
    recorded_trips: int
    recorded_earnings: float
    completed_trips: int
    completed_earnings: float
    in_sync: bool

    model_config = {"from_attributes": True}


class SweepResponse(BaseModel):
    count: int
    request_ids: list[str] = []


class SyncAllResponse(BaseModel):
    synced: int
    failed: list[int] = []


class ResetResponse(BaseModel):
    reset: int


class DailyCountersResponse(BaseModel):
    day: dt.date
    trips: int = 0
    revenue: float = 0.0
    distance: float = 0.0


class HealthResponse(BaseModel):
    status: str = "ok"


class ErrorResponse(BaseModel):
    detail: str
