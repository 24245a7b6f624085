"""Initial schema: users, drivers, trips, pending ride requests and ledgers.

Revision ID: 001
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    ]


def upgrade() -> None:
    # ── drivers ───────────────────────────────────────────────────────
    op.create_table(
        "drivers",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("phone", sa.String(32), unique=True, nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("car_type", sa.String(20), nullable=False, server_default="economy"),
        sa.Column("car_plate", sa.String(20), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="offline"),
        sa.Column("rating", sa.Float, nullable=False, server_default="5.0"),
        sa.Column("rating_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("last_lat", sa.Float, nullable=True),
        sa.Column("last_lng", sa.Float, nullable=True),
        sa.Column("last_location_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("today_trips_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("today_earnings", sa.Float, nullable=False, server_default="0"),
        sa.Column("total_trips", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total_earnings", sa.Float, nullable=False, server_default="0"),
        sa.Column("balance", sa.Float, nullable=False, server_default="0"),
        sa.Column("last_earnings_reset", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("idx_drivers_status", "drivers", ["status"])
    op.create_index("idx_drivers_car_type", "drivers", ["car_type"])

    # ── users ─────────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("phone", sa.String(32), unique=True, nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("role", sa.String(20), nullable=False, server_default="passenger"),
        sa.Column("balance", sa.Float, nullable=False, server_default="0"),
        sa.Column("points", sa.Integer, nullable=False, server_default="0"),
        sa.Column("rating", sa.Float, nullable=False, server_default="5.0"),
        sa.Column("status", sa.String(20), server_default="active"),
        sa.Column("driver_id", sa.Integer, sa.ForeignKey("drivers.id"), nullable=True),
        *_timestamps(),
    )

    # ── trips ─────────────────────────────────────────────────────────
    op.create_table(
        "trips",
        sa.Column("id", sa.String(40), primary_key=True),
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("driver_id", sa.Integer, sa.ForeignKey("drivers.id"), nullable=True),
        sa.Column("driver_name", sa.String(120), nullable=True),
        sa.Column("pickup_location", sa.Text, nullable=False),
        sa.Column("dropoff_location", sa.Text, nullable=False),
        sa.Column("pickup_lat", sa.Float, nullable=False),
        sa.Column("pickup_lng", sa.Float, nullable=False),
        sa.Column("pickup_accuracy", sa.Float, nullable=True),
        sa.Column("pickup_timestamp", sa.DateTime(timezone=True), nullable=True),
        sa.Column("dropoff_lat", sa.Float, nullable=False),
        sa.Column("dropoff_lng", sa.Float, nullable=False),
        sa.Column("car_type", sa.String(20), nullable=False, server_default="economy"),
        sa.Column("cost", sa.Float, nullable=False, server_default="0"),
        sa.Column("distance", sa.Float, nullable=True),
        sa.Column("duration", sa.Integer, nullable=True),
        sa.Column("payment_method", sa.String(20), nullable=False, server_default="cash"),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("trip_status", sa.String(20), nullable=True),
        sa.Column("rating", sa.Integer, nullable=True),
        sa.Column("review", sa.Text, nullable=True),
        sa.Column("passenger_note", sa.Text, nullable=True),
        sa.Column("source", sa.String(40), server_default="passenger_app"),
        *_timestamps(),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("idx_trips_status", "trips", ["status"])
    op.create_index("idx_trips_user", "trips", ["user_id"])
    op.create_index("idx_trips_driver", "trips", ["driver_id"])
    op.create_index("idx_trips_created", "trips", ["created_at"])

    # ── pending_ride_requests ─────────────────────────────────────────
    op.create_table(
        "pending_ride_requests",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("request_id", sa.String(40), unique=True, nullable=False),
        sa.Column(
            "trip_id", sa.String(40), sa.ForeignKey("trips.id"), unique=True, nullable=False
        ),
        sa.Column("source", sa.String(40), server_default="passenger_app"),
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("passenger_name", sa.String(120), nullable=True),
        sa.Column("passenger_phone", sa.String(32), nullable=True),
        sa.Column("pickup_location", sa.Text, nullable=False),
        sa.Column("dropoff_location", sa.Text, nullable=False),
        sa.Column("pickup_lat", sa.Float, nullable=False),
        sa.Column("pickup_lng", sa.Float, nullable=False),
        sa.Column("pickup_accuracy", sa.Float, nullable=True),
        sa.Column("pickup_timestamp", sa.DateTime(timezone=True), nullable=True),
        sa.Column("dropoff_lat", sa.Float, nullable=False),
        sa.Column("dropoff_lng", sa.Float, nullable=False),
        sa.Column("car_type", sa.String(20), nullable=False, server_default="economy"),
        sa.Column("estimated_cost", sa.Float, nullable=False),
        sa.Column("estimated_distance", sa.Float, nullable=True),
        sa.Column("estimated_duration", sa.Integer, nullable=True),
        sa.Column("payment_method", sa.String(20), nullable=False, server_default="cash"),
        sa.Column("status", sa.String(20), nullable=False, server_default="waiting"),
        sa.Column(
            "assigned_driver_id", sa.Integer, sa.ForeignKey("drivers.id"), nullable=True
        ),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "rejected_by",
            postgresql.ARRAY(sa.Integer),
            nullable=False,
            server_default="{}",
        ),
        sa.Column("rejection_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("notes", sa.Text, nullable=True),
        *_timestamps(),
    )
    op.create_index("idx_pending_rides_status", "pending_ride_requests", ["status"])
    op.create_index("idx_pending_rides_expires", "pending_ride_requests", ["expires_at"])
    op.create_index("idx_pending_rides_car_type", "pending_ride_requests", ["car_type"])
    op.create_index(
        "idx_pending_rides_driver", "pending_ride_requests", ["assigned_driver_id"]
    )

    # ── driver_earnings ───────────────────────────────────────────────
    op.create_table(
        "driver_earnings",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("driver_id", sa.Integer, sa.ForeignKey("drivers.id"), nullable=False),
        sa.Column("date", sa.Date, nullable=False),
        sa.Column("today_trips", sa.Integer, nullable=False, server_default="0"),
        sa.Column("today_earnings", sa.Float, nullable=False, server_default="0"),
        sa.Column("total_trips", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total_earnings", sa.Float, nullable=False, server_default="0"),
        *_timestamps(),
        sa.UniqueConstraint("driver_id", "date", name="uq_driver_earnings_day"),
    )
    op.create_index(
        "idx_driver_earnings_driver_date", "driver_earnings", ["driver_id", "date"]
    )

    # ── trip_locations ────────────────────────────────────────────────
    op.create_table(
        "trip_locations",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("trip_id", sa.String(40), sa.ForeignKey("trips.id"), nullable=False),
        sa.Column("lat", sa.Float, nullable=False),
        sa.Column("lng", sa.Float, nullable=False),
        sa.Column(
            "recorded_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )
    op.create_index(
        "idx_trip_locations_trip", "trip_locations", ["trip_id", "recorded_at"]
    )

    # ── trip_daily_counters ───────────────────────────────────────────
    op.create_table(
        "trip_daily_counters",
        sa.Column("day", sa.Date, primary_key=True),
        sa.Column("trips", sa.Integer, nullable=False, server_default="0"),
        sa.Column("revenue", sa.Float, nullable=False, server_default="0"),
        sa.Column("distance", sa.Float, nullable=False, server_default="0"),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
        ),
    )


def downgrade() -> None:
    op.drop_table("trip_daily_counters")
    op.drop_table("trip_locations")
    op.drop_table("driver_earnings")
    op.drop_table("pending_ride_requests")
    op.drop_table("trips")
    op.drop_table("users")
    op.drop_table("drivers")
