"""Wires the services together for one application instance."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

import redis.asyncio as aioredis

from ridehail.config import Settings
from ridehail.domain.pricing import pricing_for
from ridehail.infrastructure.gateway import PersistenceGateway
from ridehail.services.drivers import DriverService
from ridehail.services.earnings import EarningsSync
from ridehail.services.lifecycle import TripLifecycle
from ridehail.services.matching import MatchingEngine
from ridehail.services.notifications import NotificationBridge


@dataclass
class Services:
    gateway: PersistenceGateway
    bridge: NotificationBridge
    earnings: EarningsSync
    lifecycle: TripLifecycle
    matching: MatchingEngine
    drivers: DriverService


def build_services(
    settings: Settings,
    gateway: PersistenceGateway,
    redis: Optional[aioredis.Redis],
) -> Services:
    bridge = NotificationBridge(redis)
    earnings = EarningsSync(
        gateway,
        attempts=settings.earnings_sync_attempts,
        backoff_seconds=settings.earnings_sync_backoff_seconds,
    )
    lifecycle = TripLifecycle(
        gateway,
        earnings,
        bridge,
        pricing=pricing_for(settings.completion_pricing),
    )
    matching = MatchingEngine(
        gateway,
        lifecycle,
        request_ttl=timedelta(minutes=settings.pending_request_ttl_minutes),
        max_assign_distance_km=settings.max_assign_distance_km,
        location_ttl=timedelta(minutes=settings.driver_location_ttl_minutes),
        h3_resolution=settings.h3_resolution,
        auto_assign=settings.auto_assign_trips,
    )
    return Services(
        gateway=gateway,
        bridge=bridge,
        earnings=earnings,
        lifecycle=lifecycle,
        matching=matching,
        drivers=DriverService(gateway, bridge),
    )
