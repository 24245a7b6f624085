"""Maintenance worker tests (mocked Redis lock, real SQLite store)."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from ridehail.domain.entities import TripDraft
from ridehail.workers.maintenance import MaintenanceWorker
from tests.conftest import trip_payload


def _worker(services, redis, clock, interval=60):
    return MaintenanceWorker(
        services.matching,
        services.earnings,
        redis,
        interval_seconds=interval,
        clock=clock,
    )


class TestRunCycle:
    @pytest.mark.asyncio
    async def test_cycle_sweeps_and_resets(self, services, seeded, redis, clock):
        created = await services.matching.create(TripDraft(**trip_payload()))
        clock.advance(minutes=25)

        result = await _worker(services, redis, clock).run_cycle()
        assert result.request_ids == [created.request.request_id]

        redis.set.assert_called_once()
        assert redis.set.call_args.args[0] == "ridehail:lock:maintenance"
        redis.eval.assert_called_once()

        driver = await services.drivers.get(10)
        assert driver.last_earnings_reset is not None

    @pytest.mark.asyncio
    async def test_skips_when_lock_held(self, services, seeded, redis, clock):
        redis.set = AsyncMock(return_value=False)
        await services.matching.create(TripDraft(**trip_payload()))
        clock.advance(minutes=25)

        assert await _worker(services, redis, clock).run_cycle() is None
        redis.eval.assert_not_called()
        assert (await services.matching.sweep_expired()).count == 1

    @pytest.mark.asyncio
    async def test_daily_reset_runs_once_per_date(self, services, seeded, redis, clock, monkeypatch):
        reset = AsyncMock(return_value=0)
        monkeypatch.setattr(services.earnings, "reset_daily", reset)
        worker = _worker(services, redis, clock)

        await worker.run_cycle()
        clock.advance(minutes=1)
        await worker.run_cycle()
        assert reset.await_count == 1

        clock.advance(days=1)
        await worker.run_cycle()
        assert reset.await_count == 2

    @pytest.mark.asyncio
    async def test_lock_released_on_error(self, services, seeded, redis, clock, monkeypatch):
        monkeypatch.setattr(
            services.matching, "sweep_expired", AsyncMock(side_effect=RuntimeError("boom"))
        )
        with pytest.raises(RuntimeError):
            await _worker(services, redis, clock).run_cycle()
        redis.eval.assert_called_once()


class TestLoop:
    @pytest.mark.asyncio
    async def test_start_and_stop(self, services, seeded, redis, clock, monkeypatch):
        cycles = AsyncMock(return_value=None)
        worker = _worker(services, redis, clock, interval=3600)
        monkeypatch.setattr(worker, "run_cycle", cycles)

        await worker.start()
        await asyncio.sleep(0.05)
        await worker.stop()
        assert cycles.await_count == 1

    @pytest.mark.asyncio
    async def test_loop_survives_failed_cycle(self, services, seeded, redis, clock, monkeypatch):
        failures = [RuntimeError("boom")]

        async def _cycle():
            if failures:
                raise failures.pop()

        cycles = AsyncMock(side_effect=_cycle)
        worker = _worker(services, redis, clock, interval=0.01)
        monkeypatch.setattr(worker, "run_cycle", cycles)

        await worker.start()
        await asyncio.sleep(0.1)
        await worker.stop()
        assert cycles.await_count >= 2
