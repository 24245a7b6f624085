"""
Repository Pattern -- abstracts DB access so domain logic stays DB-agnostic.

Each repository receives an ``AsyncSession`` (unit-of-work) and exposes
domain-relevant queries only.

Writes go through two rules:

* **Conditional update** -- every status change is
  ``UPDATE .. WHERE status = <expected>`` and reports whether a row
  matched.  This is the only concurrency-control primitive for trips
  and pending requests.
* **Allow-listed patches** -- each entity has a fixed mapping from
  patchable field name to column; any other key raises ``ValueError``.

Reads use ``populate_existing`` so rows touched by an earlier ``UPDATE``
in the same session are never served stale from the identity map.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Iterable, Optional, Union

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from .models import (
    DriverEarningsModel,
    DriverModel,
    PendingRideModel,
    TripDailyCounterModel,
    TripLocationModel,
    TripModel,
    UserModel,
)
from ridehail.domain.entities import check_request_move
from ridehail.domain.enums import DriverStatus, RequestStatus, TripStatus
from ridehail.domain.errors import Conflict


def _columns(model, names: Iterable[str]) -> dict[str, Any]:
    return {name: getattr(model, name) for name in names}


TRIP_PATCHABLE = _columns(
    TripModel,
    (
        "status",
        "trip_status",
        "driver_id",
        "driver_name",
        "cost",
        "distance",
        "duration",
        "payment_method",
        "rating",
        "review",
        "started_at",
        "completed_at",
        "cancelled_at",
    ),
)

REQUEST_PATCHABLE = _columns(
    PendingRideModel,
    ("status", "assigned_driver_id", "assigned_at", "notes"),
)


def _clean(patch: dict[str, Any], allowed: dict[str, Any], entity: str) -> dict:
    unknown = set(patch) - set(allowed)
    if unknown:
        raise ValueError(f"Fields not patchable on {entity}: {sorted(unknown)}")
    return {allowed[name]: value for name, value in patch.items()}


def _insert_for(session: AsyncSession):
    """Dialect-specific INSERT that supports ON CONFLICT."""
    if session.bind.dialect.name == "postgresql":
        return pg_insert
    return sqlite_insert


StatusSet = Union[str, Iterable[str]]


def _statuses(expected: StatusSet) -> list[str]:
    items = [expected] if isinstance(expected, str) else list(expected)
    return [getattr(s, "value", s) for s in items]


class TripRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def insert(self, trip: TripModel) -> TripModel:
        self.session.add(trip)
        await self.session.flush()
        return trip

    async def get(self, trip_id: str) -> Optional[TripModel]:
        result = await self.session.execute(
            select(TripModel)
            .where(TripModel.id == trip_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def update_if_status(
        self,
        trip_id: str,
        expected: StatusSet,
        patch: dict[str, Any],
        **guards: Any,
    ) -> Optional[TripModel]:
        """Apply *patch* only if the row is still in *expected*.

        *guards* add equality checks on other patchable columns (``None``
        means ``IS NULL``).  Returns the refreshed row, or ``None`` if no
        row matched.
        """
        values = _clean(patch, TRIP_PATCHABLE, "trip")
        stmt = update(TripModel).where(
            TripModel.id == trip_id, TripModel.status.in_(_statuses(expected))
        )
        for column, value in _clean(guards, TRIP_PATCHABLE, "trip").items():
            stmt = stmt.where(column.is_(None) if value is None else column == value)
        result = await self.session.execute(
            stmt.values(values).execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            return None
        return await self.get(trip_id)

    async def list_by_user(self, user_id: int, limit: int = 50) -> list[TripModel]:
        result = await self.session.execute(
            select(TripModel)
            .where(TripModel.user_id == user_id)
            .order_by(TripModel.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def list_by_driver(
        self, driver_id: int, status: Optional[str] = None, limit: int = 50
    ) -> list[TripModel]:
        query = select(TripModel).where(TripModel.driver_id == driver_id)
        if status:
            query = query.where(TripModel.status == status)
        result = await self.session.execute(
            query.order_by(TripModel.created_at.desc()).limit(limit)
        )
        return list(result.scalars().all())

    async def active_for_driver(self, driver_id: int) -> Optional[TripModel]:
        """The trip a driver is currently assigned to or driving, if any."""
        result = await self.session.execute(
            select(TripModel)
            .where(
                TripModel.driver_id == driver_id,
                TripModel.status.in_(
                    [TripStatus.ASSIGNED.value, TripStatus.ONGOING.value]
                ),
            )
            .order_by(TripModel.created_at.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def busy_driver_ids(self) -> set[int]:
        result = await self.session.execute(
            select(TripModel.driver_id)
            .where(
                TripModel.driver_id.is_not(None),
                TripModel.status.in_(
                    [TripStatus.ASSIGNED.value, TripStatus.ONGOING.value]
                ),
            )
            .distinct()
        )
        return set(result.scalars().all())

    async def completed_totals(self, driver_id: int) -> tuple[int, float]:
        """``(count, sum of cost)`` over the driver's completed trips."""
        result = await self.session.execute(
            select(func.count(), func.coalesce(func.sum(TripModel.cost), 0.0)).where(
                TripModel.driver_id == driver_id,
                TripModel.status == TripStatus.COMPLETED.value,
            )
        )
        count, total = result.one()
        return int(count), float(total)


class PendingRideRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def insert(self, req: PendingRideModel) -> PendingRideModel:
        self.session.add(req)
        await self.session.flush()
        return req

    async def get(self, request_id: str) -> Optional[PendingRideModel]:
        result = await self.session.execute(
            select(PendingRideModel)
            .where(PendingRideModel.request_id == request_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_by_trip(self, trip_id: str) -> Optional[PendingRideModel]:
        result = await self.session.execute(
            select(PendingRideModel)
            .where(PendingRideModel.trip_id == trip_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def update_if_status(
        self, request_id: str, expected: StatusSet, patch: dict[str, Any]
    ) -> Optional[PendingRideModel]:
        values = _clean(patch, REQUEST_PATCHABLE, "pending ride request")
        if "status" in patch:
            check_request_move(_statuses(expected), patch["status"])
        result = await self.session.execute(
            update(PendingRideModel)
            .where(
                PendingRideModel.request_id == request_id,
                PendingRideModel.status.in_(_statuses(expected)),
            )
            .values(values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            return None
        return await self.get(request_id)

    async def list_waiting(
        self, *, now: datetime, car_type: Optional[str] = None
    ) -> list[PendingRideModel]:
        """Unexpired waiting requests whose trip is still open for matching."""
        query = (
            select(PendingRideModel)
            .join(TripModel, TripModel.id == PendingRideModel.trip_id)
            .where(
                PendingRideModel.status == RequestStatus.WAITING.value,
                PendingRideModel.expires_at > now,
                TripModel.status == TripStatus.PENDING.value,
                TripModel.driver_id.is_(None),
            )
        )
        if car_type:
            query = query.where(PendingRideModel.car_type == car_type)
        result = await self.session.execute(
            query.order_by(PendingRideModel.created_at, PendingRideModel.id)
        )
        return list(result.scalars().all())

    async def expired_ids(self, now: datetime) -> list[str]:
        result = await self.session.execute(
            select(PendingRideModel.request_id)
            .where(
                PendingRideModel.status == RequestStatus.WAITING.value,
                PendingRideModel.expires_at < now,
            )
            .order_by(PendingRideModel.expires_at)
        )
        return list(result.scalars().all())

    async def add_rejection(
        self, request_id: str, driver_id: int, attempts: int = 5
    ) -> Optional[PendingRideModel]:
        """Add *driver_id* to ``rejected_by`` exactly once.

        Guarded on the ``rejection_count`` that was read, so two drivers
        rejecting at the same moment cannot overwrite each other's entry.
        """
        for _ in range(attempts):
            req = await self.get(request_id)
            if req is None:
                return None
            rejected = list(req.rejected_by or [])
            if driver_id in rejected:
                return req
            rejected.append(driver_id)
            result = await self.session.execute(
                update(PendingRideModel)
                .where(
                    PendingRideModel.request_id == request_id,
                    PendingRideModel.rejection_count == req.rejection_count,
                )
                .values(rejected_by=rejected, rejection_count=len(rejected))
                .execution_options(synchronize_session=False)
            )
            if result.rowcount:
                return await self.get(request_id)
        raise Conflict("Ride request is being updated concurrently, retry")


class DriverRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, driver_id: int) -> Optional[DriverModel]:
        result = await self.session.execute(
            select(DriverModel)
            .where(DriverModel.id == driver_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_for_update(self, driver_id: int) -> Optional[DriverModel]:
        """SELECT ... FOR UPDATE: serialises counter writes per driver."""
        result = await self.session.execute(
            select(DriverModel)
            .where(DriverModel.id == driver_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_ids(self) -> list[int]:
        result = await self.session.execute(select(DriverModel.id).order_by(DriverModel.id))
        return list(result.scalars().all())

    async def list_available(
        self, *, fresh_since: datetime, car_type: Optional[str] = None
    ) -> list[DriverModel]:
        """Online drivers with a location reported after *fresh_since*."""
        query = select(DriverModel).where(
            DriverModel.status == DriverStatus.ONLINE.value,
            DriverModel.last_lat.is_not(None),
            DriverModel.last_lng.is_not(None),
            DriverModel.last_location_at >= fresh_since,
        )
        if car_type:
            query = query.where(DriverModel.car_type == car_type)
        result = await self.session.execute(query.order_by(DriverModel.id))
        return list(result.scalars().all())

    async def update_location(
        self, driver_id: int, lat: float, lng: float, at: datetime
    ) -> bool:
        result = await self.session.execute(
            update(DriverModel)
            .where(DriverModel.id == driver_id)
            .values(
                last_lat=lat,
                last_lng=lng,
                last_location_at=at,
                status=DriverStatus.ONLINE.value,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def set_status(self, driver_id: int, status: DriverStatus) -> bool:
        result = await self.session.execute(
            update(DriverModel)
            .where(DriverModel.id == driver_id)
            .values(status=status.value)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def increment_counters(
        self, driver_id: int, trips_delta: int, earnings_delta: float
    ) -> bool:
        """Atomic ``col = col + delta`` on every running counter."""
        result = await self.session.execute(
            update(DriverModel)
            .where(DriverModel.id == driver_id)
            .values(
                today_trips_count=DriverModel.today_trips_count + trips_delta,
                total_trips=DriverModel.total_trips + trips_delta,
                today_earnings=DriverModel.today_earnings + earnings_delta,
                total_earnings=DriverModel.total_earnings + earnings_delta,
                balance=DriverModel.balance + earnings_delta,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def reset_today(
        self, *, day_start: datetime, at: datetime, driver_id: Optional[int] = None
    ) -> int:
        """Zero ``today_*`` for drivers not yet reset since *day_start*."""
        stmt = update(DriverModel).where(
            (DriverModel.last_earnings_reset.is_(None))
            | (DriverModel.last_earnings_reset < day_start)
        )
        if driver_id is not None:
            stmt = stmt.where(DriverModel.id == driver_id)
        result = await self.session.execute(
            stmt.values(today_trips_count=0, today_earnings=0.0, last_earnings_reset=at)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def record_rating(self, driver_id: int, score: int) -> bool:
        result = await self.session.execute(
            update(DriverModel)
            .where(DriverModel.id == driver_id)
            .values(
                rating=(DriverModel.rating * DriverModel.rating_count + score)
                / (DriverModel.rating_count + 1),
                rating_count=DriverModel.rating_count + 1,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0


class UserRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, user_id: int) -> Optional[UserModel]:
        return await self.session.get(UserModel, user_id)


class EarningsRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, driver_id: int, day: date) -> Optional[DriverEarningsModel]:
        result = await self.session.execute(
            select(DriverEarningsModel)
            .where(
                DriverEarningsModel.driver_id == driver_id,
                DriverEarningsModel.date == day,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def upsert_today(
        self, driver_id: int, day: date, snapshot: dict[str, Any], at: datetime
    ) -> DriverEarningsModel:
        """INSERT .. ON CONFLICT (driver_id, date) DO UPDATE."""
        fields = {
            "today_trips": snapshot["today_trips"],
            "today_earnings": snapshot["today_earnings"],
            "total_trips": snapshot["total_trips"],
            "total_earnings": snapshot["total_earnings"],
        }
        stmt = _insert_for(self.session)(DriverEarningsModel).values(
            driver_id=driver_id, date=day, created_at=at, updated_at=at, **fields
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["driver_id", "date"],
            set_={**fields, "updated_at": at},
        )
        await self.session.execute(stmt)
        return await self.get(driver_id, day)

    async def history(self, driver_id: int, since: date) -> list[DriverEarningsModel]:
        result = await self.session.execute(
            select(DriverEarningsModel)
            .where(
                DriverEarningsModel.driver_id == driver_id,
                DriverEarningsModel.date >= since,
            )
            .order_by(DriverEarningsModel.date.desc())
        )
        return list(result.scalars().all())


class TripLocationRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def append(self, trip_id: str, lat: float, lng: float, at: datetime) -> None:
        self.session.add(TripLocationModel(trip_id=trip_id, lat=lat, lng=lng, recorded_at=at))
        await self.session.flush()

    async def path(self, trip_id: str) -> list[tuple[float, float]]:
        result = await self.session.execute(
            select(TripLocationModel.lat, TripLocationModel.lng)
            .where(TripLocationModel.trip_id == trip_id)
            .order_by(TripLocationModel.recorded_at, TripLocationModel.id)
        )
        return [(lat, lng) for lat, lng in result.all()]


class CounterRepository:
    """Daily dashboard aggregates."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def bump_day(self, day: date, revenue: float, distance: float, at: datetime) -> None:
        stmt = _insert_for(self.session)(TripDailyCounterModel).values(
            day=day, trips=1, revenue=revenue, distance=distance, updated_at=at
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["day"],
            set_={
                "trips": TripDailyCounterModel.trips + 1,
                "revenue": TripDailyCounterModel.revenue + revenue,
                "distance": TripDailyCounterModel.distance + distance,
                "updated_at": at,
            },
        )
        await self.session.execute(stmt)

    async def get(self, day: date) -> Optional[TripDailyCounterModel]:
        result = await self.session.execute(
            select(TripDailyCounterModel)
            .where(TripDailyCounterModel.day == day)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()
