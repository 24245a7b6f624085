"""
SQLAlchemy ORM models  (maps to PostgreSQL; SQLite works for tests).

Tables
------
* ``users``                 -- passengers / drivers / admins (identity + wallet)
* ``drivers``               -- operational driver profile and running counters
* ``trips``                 -- the canonical ride record
* ``pending_ride_requests`` -- driver-facing matching envelope around a trip
* ``driver_earnings``       -- one ledger row per (driver, date)
* ``trip_locations``        -- driver pings recorded while a trip is ongoing
* ``trip_daily_counters``   -- per-day trips / revenue / distance for dashboards

Indexes
-------
* **B-Tree** on ``status`` columns, ``expires_at``, ``user_id`` / ``driver_id``
  for the matching sweep and the per-driver listings.
* **Unique** ``(driver_id, date)`` on the ledger backs the
  ``ON CONFLICT`` upsert.

All timestamps are written from Python in UTC so ordering and comparisons
behave the same on every backend.
"""

from sqlalchemy import (
    JSON,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import ARRAY

from .database import Base
from ridehail.domain.clock import utcnow
from ridehail.domain.enums import (
    CarType,
    DriverStatus,
    RequestStatus,
    TripStatus,
    UserRole,
)

# INTEGER[] on PostgreSQL, JSON list elsewhere
IntList = JSON().with_variant(ARRAY(Integer), "postgresql")


class UserModel(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(120), nullable=False)
    phone = Column(String(32), unique=True, nullable=False)
    email = Column(String(255), nullable=True)
    role = Column(String(20), default=UserRole.PASSENGER.value, nullable=False)
    balance = Column(Float, default=0.0, nullable=False)
    points = Column(Integer, default=0, nullable=False)
    rating = Column(Float, default=5.0, nullable=False)
    status = Column(String(20), default="active")
    driver_id = Column(Integer, ForeignKey("drivers.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class DriverModel(Base):
    __tablename__ = "drivers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(120), nullable=False)
    phone = Column(String(32), unique=True, nullable=False)
    email = Column(String(255), nullable=True)
    car_type = Column(String(20), default=CarType.ECONOMY.value, nullable=False)
    car_plate = Column(String(20), nullable=True)
    status = Column(String(20), default=DriverStatus.OFFLINE.value, nullable=False)
    rating = Column(Float, default=5.0, nullable=False)
    rating_count = Column(Integer, default=0, nullable=False)

    last_lat = Column(Float, nullable=True)
    last_lng = Column(Float, nullable=True)
    last_location_at = Column(DateTime(timezone=True), nullable=True)

    # Running counters -- mutated only by EarningsSync
    today_trips_count = Column(Integer, default=0, nullable=False)
    today_earnings = Column(Float, default=0.0, nullable=False)
    total_trips = Column(Integer, default=0, nullable=False)
    total_earnings = Column(Float, default=0.0, nullable=False)
    balance = Column(Float, default=0.0, nullable=False)
    last_earnings_reset = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("idx_drivers_status", "status"),
        Index("idx_drivers_car_type", "car_type"),
    )


class TripModel(Base):
    __tablename__ = "trips"

    id = Column(String(40), primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    driver_id = Column(Integer, ForeignKey("drivers.id"), nullable=True)
    driver_name = Column(String(120), nullable=True)

    pickup_location = Column(Text, nullable=False)
    dropoff_location = Column(Text, nullable=False)
    pickup_lat = Column(Float, nullable=False)
    pickup_lng = Column(Float, nullable=False)
    pickup_accuracy = Column(Float, nullable=True)
    pickup_timestamp = Column(DateTime(timezone=True), nullable=True)
    dropoff_lat = Column(Float, nullable=False)
    dropoff_lng = Column(Float, nullable=False)

    car_type = Column(String(20), default=CarType.ECONOMY.value, nullable=False)
    cost = Column(Float, default=0.0, nullable=False)
    distance = Column(Float, nullable=True)  # km
    duration = Column(Integer, nullable=True)  # minutes
    payment_method = Column(String(20), default="cash", nullable=False)

    status = Column(String(20), default=TripStatus.PENDING.value, nullable=False)
    trip_status = Column(String(20), nullable=True)
    rating = Column(Integer, nullable=True)
    review = Column(Text, nullable=True)
    passenger_note = Column(Text, nullable=True)
    source = Column(String(40), default="passenger_app")

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_trips_status", "status"),
        Index("idx_trips_user", "user_id"),
        Index("idx_trips_driver", "driver_id"),
        Index("idx_trips_created", "created_at"),
    )


class PendingRideModel(Base):
    __tablename__ = "pending_ride_requests"

    id = Column(Integer, primary_key=True, autoincrement=True)
    request_id = Column(String(40), unique=True, nullable=False)
    trip_id = Column(String(40), ForeignKey("trips.id"), unique=True, nullable=False)
    source = Column(String(40), default="passenger_app")

    # Denormalised passenger / route summary for fast listing
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    passenger_name = Column(String(120), nullable=True)
    passenger_phone = Column(String(32), nullable=True)
    pickup_location = Column(Text, nullable=False)
    dropoff_location = Column(Text, nullable=False)
    pickup_lat = Column(Float, nullable=False)
    pickup_lng = Column(Float, nullable=False)
    pickup_accuracy = Column(Float, nullable=True)
    pickup_timestamp = Column(DateTime(timezone=True), nullable=True)
    dropoff_lat = Column(Float, nullable=False)
    dropoff_lng = Column(Float, nullable=False)

    car_type = Column(String(20), default=CarType.ECONOMY.value, nullable=False)
    estimated_cost = Column(Float, nullable=False)
    estimated_distance = Column(Float, nullable=True)
    estimated_duration = Column(Integer, nullable=True)
    payment_method = Column(String(20), default="cash", nullable=False)

    status = Column(String(20), default=RequestStatus.WAITING.value, nullable=False)
    assigned_driver_id = Column(Integer, ForeignKey("drivers.id"), nullable=True)
    assigned_at = Column(DateTime(timezone=True), nullable=True)
    rejected_by = Column(IntList, nullable=False, default=list)
    rejection_count = Column(Integer, default=0, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("idx_pending_rides_status", "status"),
        Index("idx_pending_rides_expires", "expires_at"),
        Index("idx_pending_rides_car_type", "car_type"),
        Index("idx_pending_rides_driver", "assigned_driver_id"),
    )


class DriverEarningsModel(Base):
    __tablename__ = "driver_earnings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    driver_id = Column(Integer, ForeignKey("drivers.id"), nullable=False)
    date = Column(Date, nullable=False)
    today_trips = Column(Integer, default=0, nullable=False)
    today_earnings = Column(Float, default=0.0, nullable=False)
    total_trips = Column(Integer, default=0, nullable=False)
    total_earnings = Column(Float, default=0.0, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("driver_id", "date", name="uq_driver_earnings_day"),
        Index("idx_driver_earnings_driver_date", "driver_id", "date"),
    )


class TripLocationModel(Base):
    __tablename__ = "trip_locations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    trip_id = Column(String(40), ForeignKey("trips.id"), nullable=False)
    lat = Column(Float, nullable=False)
    lng = Column(Float, nullable=False)
    recorded_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (Index("idx_trip_locations_trip", "trip_id", "recorded_at"),)


class TripDailyCounterModel(Base):
    __tablename__ = "trip_daily_counters"

    day = Column(Date, primary_key=True)
    trips = Column(Integer, default=0, nullable=False)
    revenue = Column(Float, default=0.0, nullable=False)
    distance = Column(Float, default=0.0, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
