"""
Background Maintenance Worker
=============================

Runs every ``SWEEP_INTERVAL_SECONDS`` (default 60 s).

Per cycle
---------
1. Expire waiting ride requests past their ``expires_at`` (and cancel the
   trips nobody picked up).
2. Once per calendar day, zero the drivers' ``today_*`` earnings counters.

Concurrency safety
------------------
* A **Redis distributed lock** keeps the cycle on one API process at a
  time; the others skip.
* Both steps are also safe on their own: the sweep is a per-row
  conditional update and the reset only touches drivers not yet reset
  today.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date, datetime
from typing import Callable, Optional

import redis.asyncio as aioredis

from ridehail.domain.clock import utcnow
from ridehail.infrastructure.locks import DistributedLock
from ridehail.services.earnings import EarningsSync
from ridehail.services.matching import MatchingEngine, SweepResult

logger = logging.getLogger(__name__)


class MaintenanceWorker:
    def __init__(
        self,
        matching: MatchingEngine,
        earnings: EarningsSync,
        redis: aioredis.Redis,
        *,
        interval_seconds: int = 60,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.matching = matching
        self.earnings = earnings
        self.redis = redis
        self.interval_seconds = interval_seconds
        self.clock = clock
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None
        self._last_reset_day: Optional[date] = None

    # ── Public API ────────────────────────────────────────────────────

    async def start(self) -> None:
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._loop())
        logger.info("Maintenance worker started (interval=%ds)", self.interval_seconds)

    async def stop(self) -> None:
        if self._stop_event:
            self._stop_event.set()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        logger.info("Maintenance worker stopped")

    async def run_cycle(self) -> Optional[SweepResult]:
        """One sweep (+ daily reset when the date changed).  None if skipped."""
        lock = DistributedLock(
            self.redis, "maintenance", ttl_seconds=max(30, self.interval_seconds * 2)
        )
        if not await lock.acquire():
            logger.debug("Lock held by another worker - skipping cycle")
            return None

        try:
            now = self.clock()
            result = await self.matching.sweep_expired(now)
            if self._last_reset_day != now.date():
                await self.earnings.reset_daily(now)
                self._last_reset_day = now.date()
            return result
        finally:
            await lock.release()

    # ── Internals ─────────────────────────────────────────────────────

    async def _loop(self) -> None:
        assert self._stop_event is not None
        while not self._stop_event.is_set():
            try:
                await self.run_cycle()
            except Exception:
                logger.exception("Unhandled error in maintenance cycle")
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
                break
            except asyncio.TimeoutError:
                pass
