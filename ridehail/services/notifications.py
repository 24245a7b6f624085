"""
NotificationBridge -- fire-and-forget realtime events over Redis pub/sub.

Events are published as JSON on ``trip:<trip_id>``; a socket gateway
subscribed to those channels relays them to the rider and driver apps.
Delivery is best-effort: a failed publish is logged and dropped.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

TRIP_STARTED = "trip_started"
DRIVER_LIVE_LOCATION = "driver_live_location"
TRIP_COMPLETED = "trip_completed"
TRIP_RATED = "trip_rated"


def trip_channel(trip_id: str) -> str:
    return f"trip:{trip_id}"


def _encode(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


class NotificationBridge:
    def __init__(self, redis: Optional[aioredis.Redis]):
        self.redis = redis

    async def emit(self, event: str, trip_id: str, **fields: Any) -> bool:
        """Publish *event* for *trip_id*.  Returns False if it was dropped."""
        if self.redis is None:
            return False
        message = json.dumps({"event": event, "trip_id": trip_id, **fields}, default=_encode)
        try:
            await self.redis.publish(trip_channel(trip_id), message)
        except (RedisError, OSError) as exc:
            logger.warning("Dropped %s for trip %s: %s", event, trip_id, exc)
            return False
        return True
