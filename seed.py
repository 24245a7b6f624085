"""
Seed script -- populates the database with sample data for reviewers.

Run after migrations:
    python seed.py

Creates:
  - 8 sample passengers
  - 10 sample drivers (online, spread around central Riyadh)
  - 3 waiting trips with their pending ride requests
"""

import asyncio
from datetime import timedelta

from sqlalchemy import func, select

from ridehail.config import settings
from ridehail.domain.clock import utcnow
from ridehail.domain.enums import CarType, DriverStatus
from ridehail.infrastructure.database import Database
from ridehail.infrastructure.models import (
    DriverModel,
    PendingRideModel,
    TripModel,
    UserModel,
)
from ridehail.services.matching import new_request_id, new_trip_id

# Olaya, Riyadh (approx)
CENTER_LAT, CENTER_LNG = 24.6907, 46.6853


USERS = [
    {"name": "Omar Alharbi", "phone": "+966500000001"},
    {"name": "Sara Alqahtani", "phone": "+966500000002"},
    {"name": "Faisal Alotaibi", "phone": "+966500000003"},
    {"name": "Noura Alshehri", "phone": "+966500000004"},
    {"name": "Khalid Alzahrani", "phone": "+966500000005"},
    {"name": "Reem Almutairi", "phone": "+966500000006"},
    {"name": "Yousef Aldossari", "phone": "+966500000007"},
    {"name": "Lama Alghamdi", "phone": "+966500000008"},
]

DRIVERS = [
    {"name": "Ahmed", "car_type": CarType.ECONOMY, "plate": "ABC 1234", "lat": 24.6920, "lng": 46.6870},
    {"name": "Majed", "car_type": CarType.ECONOMY, "plate": "ABD 2231", "lat": 24.6880, "lng": 46.6830},
    {"name": "Saleh", "car_type": CarType.ECONOMY, "plate": "ABE 3120", "lat": 24.7010, "lng": 46.6950},
    {"name": "Turki", "car_type": CarType.ECONOMY, "plate": "ABF 4518", "lat": 24.6750, "lng": 46.6700},
    {"name": "Nasser", "car_type": CarType.FAMILY, "plate": "ABG 5302", "lat": 24.6930, "lng": 46.6890},
    {"name": "Hamad", "car_type": CarType.FAMILY, "plate": "ABH 6611", "lat": 24.7100, "lng": 46.7000},
    {"name": "Bandar", "car_type": CarType.FAMILY, "plate": "ABJ 7045", "lat": 24.6600, "lng": 46.7100},
    {"name": "Fahad", "car_type": CarType.LUXURY, "plate": "ABK 8120", "lat": 24.6950, "lng": 46.6800},
    {"name": "Sultan", "car_type": CarType.LUXURY, "plate": "ABL 9023", "lat": 24.7200, "lng": 46.6400},
    {"name": "Abdullah", "car_type": CarType.ECONOMY, "plate": "ABM 1077", "lat": 24.6500, "lng": 46.7200},
]

TRIPS = [
    {
        "user": 0,
        "pickup": ("Olaya Towers", 24.6907, 46.6853),
        "dropoff": ("Riyadh Park", 24.7560, 46.6290),
        "car_type": CarType.ECONOMY,
        "cost": 38.50,
        "distance": 11.2,
        "duration": 18,
    },
    {
        "user": 1,
        "pickup": ("Kingdom Centre", 24.7114, 46.6744),
        "dropoff": ("King Khalid Airport T5", 24.9576, 46.6988),
        "car_type": CarType.FAMILY,
        "cost": 92.00,
        "distance": 31.4,
        "duration": 32,
    },
    {
        "user": 2,
        "pickup": ("Al Faisaliah", 24.6905, 46.6850),
        "dropoff": ("Diriyah", 24.7340, 46.5750),
        "car_type": CarType.LUXURY,
        "cost": 120.00,
        "distance": 14.8,
        "duration": 25,
    },
]


async def seed(database: Database):
    async with database.session_factory() as session:
        # Check if already seeded
        result = await session.execute(select(func.count()).select_from(UserModel))
        if result.scalar() > 0:
            print("Database already seeded. Skipping.")
            return

        now = utcnow()

        # ── Users ─────────────────────────────────────────────────────
        user_models = []
        for u in USERS:
            m = UserModel(name=u["name"], phone=u["phone"])
            session.add(m)
            user_models.append(m)
        await session.flush()
        print(f"  Created {len(user_models)} passengers")

        # ── Drivers ───────────────────────────────────────────────────
        for i, d in enumerate(DRIVERS):
            session.add(
                DriverModel(
                    name=d["name"],
                    phone=f"+966510000{i:03d}",
                    car_type=d["car_type"].value,
                    car_plate=d["plate"],
                    status=DriverStatus.ONLINE.value,
                    last_lat=d["lat"],
                    last_lng=d["lng"],
                    last_location_at=now,
                )
            )
        await session.flush()
        print(f"  Created {len(DRIVERS)} drivers")

        # ── Waiting trips ─────────────────────────────────────────────
        for t in TRIPS:
            user = user_models[t["user"]]
            pickup_label, pickup_lat, pickup_lng = t["pickup"]
            dropoff_label, dropoff_lat, dropoff_lng = t["dropoff"]
            trip = TripModel(
                id=new_trip_id(now),
                user_id=user.id,
                pickup_location=pickup_label,
                dropoff_location=dropoff_label,
                pickup_lat=pickup_lat,
                pickup_lng=pickup_lng,
                dropoff_lat=dropoff_lat,
                dropoff_lng=dropoff_lng,
                car_type=t["car_type"].value,
                cost=t["cost"],
                distance=t["distance"],
                duration=t["duration"],
                created_at=now,
            )
            session.add(trip)
            await session.flush()
            session.add(
                PendingRideModel(
                    request_id=new_request_id(now),
                    trip_id=trip.id,
                    user_id=user.id,
                    passenger_name=user.name,
                    passenger_phone=user.phone,
                    pickup_location=pickup_label,
                    dropoff_location=dropoff_label,
                    pickup_lat=pickup_lat,
                    pickup_lng=pickup_lng,
                    dropoff_lat=dropoff_lat,
                    dropoff_lng=dropoff_lng,
                    car_type=t["car_type"].value,
                    estimated_cost=t["cost"],
                    estimated_distance=t["distance"],
                    estimated_duration=t["duration"],
                    rejected_by=[],
                    expires_at=now + timedelta(minutes=settings.pending_request_ttl_minutes),
                    created_at=now,
                )
            )
        await session.flush()
        print(f"  Created {len(TRIPS)} waiting trips")

        await session.commit()
        print("\nSeed complete!")


async def main():
    print("Seeding database...")
    database = Database.from_settings(settings)
    await seed(database)
    await database.dispose()


if __name__ == "__main__":
    asyncio.run(main())
