"""
Integration tests for the REST API endpoints.

Runs the real services against SQLite with a mocked Redis; the rate
limiter is disabled for the duration of each test.
"""

import asyncio

import pytest
from httpx import AsyncClient

from tests.conftest import PICKUP, trip_payload


async def _create(client: AsyncClient, **overrides) -> dict:
    resp = await client.post("/api/v1/trips", json=trip_payload(**overrides))
    assert resp.status_code == 201, resp.text
    return resp.json()


async def _accepted(client: AsyncClient, driver_id: int = 10) -> dict:
    created = await _create(client)
    request_id = created["pending_request"]["request_id"]
    resp = await client.post(
        f"/api/v1/pending-rides/{request_id}/accept", json={"driver_id": driver_id}
    )
    assert resp.status_code == 200, resp.text
    return created


# ── Health / admin ────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    resp = await client.get("/api/v1/admin/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_sync_all_and_reset(client: AsyncClient):
    resp = await client.post("/api/v1/admin/earnings/sync-all")
    assert resp.status_code == 200
    assert resp.json() == {"synced": 4, "failed": []}

    resp = await client.post("/api/v1/admin/earnings/reset-daily")
    assert resp.status_code == 200
    assert resp.json()["reset"] == 4


@pytest.mark.asyncio
async def test_daily_counters_empty_day(client: AsyncClient):
    resp = await client.get("/api/v1/admin/daily-counters", params={"day": "2026-01-01"})
    assert resp.status_code == 200
    assert resp.json() == {"day": "2026-01-01", "trips": 0, "revenue": 0.0, "distance": 0.0}


# ── Trips ─────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_create_trip_returns_201(client: AsyncClient):
    data = await _create(client)
    assert data["trip"]["id"].startswith("TR-")
    assert data["trip"]["status"] == "pending"
    assert data["pending_request"]["request_id"].startswith("REQ-")
    assert data["pending_request"]["status"] == "waiting"


@pytest.mark.asyncio
async def test_create_trip_unknown_passenger(client: AsyncClient):
    resp = await client.post("/api/v1/trips", json=trip_payload(user_id=999))
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_create_trip_unknown_car_type(client: AsyncClient):
    resp = await client.post("/api/v1/trips", json=trip_payload(car_type="rocket"))
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_create_trip_bad_latitude(client: AsyncClient):
    resp = await client.post("/api/v1/trips", json=trip_payload(pickup_lat=120))
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_get_trip_not_found(client: AsyncClient):
    resp = await client.get("/api/v1/trips/TR-missing")
    assert resp.status_code == 404
    assert "not found" in resp.json()["detail"]


@pytest.mark.asyncio
async def test_list_trips(client: AsyncClient):
    await _create(client)
    await _create(client)
    resp = await client.get("/api/v1/trips", params={"user_id": 1})
    assert resp.status_code == 200
    assert len(resp.json()) == 2

    resp = await client.get("/api/v1/trips")
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_trip_lifecycle_over_http(client: AsyncClient):
    created = await _accepted(client)
    trip_id = created["trip"]["id"]

    resp = await client.patch(f"/api/v1/trips/{trip_id}/status", json={"status": "ongoing"})
    assert resp.status_code == 200
    assert resp.json()["trip_status"] == "started"

    resp = await client.get(f"/api/v1/trips/{trip_id}/live")
    assert resp.status_code == 200
    assert resp.json()["driver_name"] == "Ahmed"

    resp = await client.post(f"/api/v1/trips/{trip_id}/end")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "completed"
    assert body["duration"] >= 1
    assert body["distance"] > 0

    resp = await client.post(f"/api/v1/trips/{trip_id}/end")
    assert resp.status_code == 200

    resp = await client.post(f"/api/v1/trips/{trip_id}/rate", json={"rating": 5})
    assert resp.status_code == 200
    assert resp.json()["trip_status"] == "rated"

    resp = await client.post(f"/api/v1/trips/{trip_id}/rate", json={"rating": 4})
    assert resp.status_code == 409

    resp = await client.get("/api/v1/admin/daily-counters")
    assert resp.json()["trips"] == 1


@pytest.mark.asyncio
async def test_invalid_transition_is_409(client: AsyncClient):
    created = await _create(client)
    resp = await client.patch(
        f"/api/v1/trips/{created['trip']['id']}/status", json={"status": "completed"}
    )
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_rating_out_of_range_is_400(client: AsyncClient):
    created = await _accepted(client)
    trip_id = created["trip"]["id"]
    await client.patch(f"/api/v1/trips/{trip_id}/status", json={"status": "ongoing"})
    await client.post(f"/api/v1/trips/{trip_id}/end")
    resp = await client.post(f"/api/v1/trips/{trip_id}/rate", json={"rating": 9})
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_assign_then_reject_returns_to_pending(client: AsyncClient):
    created = await _create(client)
    trip_id = created["trip"]["id"]

    resp = await client.patch(f"/api/v1/trips/{trip_id}/assign", json={"driver_id": 11})
    assert resp.status_code == 200
    assert resp.json()["status"] == "assigned"

    resp = await client.patch(f"/api/v1/trips/{trip_id}/reject", json={"driver_id": 11})
    assert resp.status_code == 200
    assert resp.json()["status"] == "pending"
    assert resp.json()["driver_id"] is None


@pytest.mark.asyncio
async def test_next_trip_for_driver(client: AsyncClient):
    created = await _create(client)
    resp = await client.get("/api/v1/trips/pending/next", params={"driver_id": 10})
    assert resp.status_code == 200
    body = resp.json()
    assert body["assigned"] is None
    assert body["rides"][0]["request_id"] == created["pending_request"]["request_id"]
    assert body["rides"][0]["distance_km"] is not None


# ── Pending rides ─────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_concurrent_accepts_over_http(client: AsyncClient):
    created = await _create(client)
    request_id = created["pending_request"]["request_id"]

    responses = await asyncio.gather(
        *(
            client.post(
                f"/api/v1/pending-rides/{request_id}/accept", json={"driver_id": d}
            )
            for d in (10, 11, 12)
        )
    )
    codes = sorted(r.status_code for r in responses)
    assert codes == [200, 409, 409]


@pytest.mark.asyncio
async def test_reject_and_cancel(client: AsyncClient):
    created = await _create(client)
    request_id = created["pending_request"]["request_id"]

    resp = await client.post(
        f"/api/v1/pending-rides/{request_id}/reject", json={"driver_id": 10}
    )
    assert resp.status_code == 200
    assert resp.json()["rejected_by"] == [10]

    resp = await client.get("/api/v1/drivers/10/pending-rides")
    assert resp.json() == []

    resp = await client.post(f"/api/v1/pending-rides/{request_id}/cancel")
    assert resp.status_code == 200
    assert resp.json()["status"] == "cancelled"

    resp = await client.post(
        f"/api/v1/pending-rides/{request_id}/accept", json={"driver_id": 11}
    )
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_cleanup_without_stale_requests(client: AsyncClient):
    await _create(client)
    resp = await client.post("/api/v1/pending-rides/cleanup")
    assert resp.status_code == 200
    assert resp.json() == {"count": 0, "request_ids": []}


@pytest.mark.asyncio
async def test_get_pending_ride_not_found(client: AsyncClient):
    resp = await client.get("/api/v1/pending-rides/REQ-missing")
    assert resp.status_code == 404


# ── Drivers ───────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_nearest_driver_after_ping(client: AsyncClient):
    resp = await client.patch(
        "/api/v1/drivers/11/location", json={"lat": PICKUP[0], "lng": PICKUP[1]}
    )
    assert resp.status_code == 200

    resp = await client.get(
        "/api/v1/drivers/nearest",
        params={"lat": PICKUP[0], "lng": PICKUP[1], "car_type": "economy"},
    )
    assert resp.status_code == 200
    assert resp.json()["driver_id"] == 11
    assert resp.json()["distance_km"] == 0.0


@pytest.mark.asyncio
async def test_nearest_driver_none_available(client: AsyncClient):
    resp = await client.get("/api/v1/drivers/nearest", params={"lat": 21.48, "lng": 39.19})
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_driver_status_validation(client: AsyncClient):
    resp = await client.patch("/api/v1/drivers/10/status", json={"status": "sleeping"})
    assert resp.status_code == 400
    resp = await client.patch("/api/v1/drivers/10/status", json={"status": "offline"})
    assert resp.status_code == 200
    assert resp.json()["status"] == "offline"


@pytest.mark.asyncio
async def test_driver_stats_and_earnings(client: AsyncClient):
    created = await _accepted(client)
    trip_id = created["trip"]["id"]
    await client.patch(f"/api/v1/trips/{trip_id}/status", json={"status": "ongoing"})
    await client.post(f"/api/v1/trips/{trip_id}/end")

    resp = await client.get("/api/v1/drivers/10/stats")
    assert resp.status_code == 200
    body = resp.json()
    assert body["trips"] == {"total": 1, "today": 1, "completed": 1}
    assert body["earnings"]["total"] == 38.5
    assert body["recent_trips"][0]["id"] == trip_id

    resp = await client.get("/api/v1/drivers/10/earnings")
    assert resp.status_code == 200
    assert resp.json()[0]["today_earnings"] == 38.5

    resp = await client.get("/api/v1/drivers/10/earnings/audit")
    assert resp.json()["in_sync"] is True

    resp = await client.post("/api/v1/drivers/10/sync")
    assert resp.status_code == 200
    assert resp.json()["total_trips"] == 1


@pytest.mark.asyncio
async def test_unknown_driver_is_404(client: AsyncClient):
    resp = await client.get("/api/v1/drivers/404")
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_pending_rides_stay_within_radius(client: AsyncClient):
    near = await _create(client)
    await _create(client, pickup_lat=21.4858, pickup_lng=39.1925)

    resp = await client.get("/api/v1/drivers/10/pending-rides")
    assert resp.status_code == 200
    assert [r["request_id"] for r in resp.json()] == [near["pending_request"]["request_id"]]

    resp = await client.get(
        "/api/v1/drivers/10/pending-rides", params={"max_distance_km": 5000}
    )
    assert len(resp.json()) == 1
