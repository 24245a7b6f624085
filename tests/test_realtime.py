"""
Redis-backed helpers with a mocked client.

Demonstrates:
1. Lease acquire / release semantics.
2. NotificationBridge publishes JSON on the trip channel and never raises.
"""

import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from ridehail.infrastructure.locks import DistributedLock, LockNotAcquired
from ridehail.services.notifications import NotificationBridge, trip_channel


class TestDistributedLock:
    """Tests the Redis distributed lock logic (mocked Redis)."""

    @pytest.mark.asyncio
    async def test_acquire_succeeds(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=True)

        lock = DistributedLock(mock_redis, "test-key", ttl_seconds=10)
        assert await lock.acquire() is True
        mock_redis.set.assert_called_once_with(
            "ridehail:lock:test-key", lock.token, nx=True, ex=10
        )

    @pytest.mark.asyncio
    async def test_acquire_fails_if_held(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=None)

        lock = DistributedLock(mock_redis, "test-key", ttl_seconds=10)
        assert await lock.acquire() is False

    @pytest.mark.asyncio
    async def test_release_passes_owner_token(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=True)
        mock_redis.eval = AsyncMock(return_value=1)

        lock = DistributedLock(mock_redis, "test-key", ttl_seconds=10)
        await lock.acquire()
        assert await lock.release() is True

        args = mock_redis.eval.call_args.args
        assert args[1:] == (1, "ridehail:lock:test-key", lock.token)

    @pytest.mark.asyncio
    async def test_release_after_lease_lapsed(self, caplog):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=True)
        mock_redis.eval = AsyncMock(return_value=0)

        lock = DistributedLock(mock_redis, "test-key")
        await lock.acquire()
        assert await lock.release() is False
        assert "lapsed before release" in caplog.text

    @pytest.mark.asyncio
    async def test_release_without_acquire_skips_redis(self):
        mock_redis = AsyncMock()

        lock = DistributedLock(mock_redis, "test-key")
        assert await lock.release() is False
        mock_redis.eval.assert_not_called()

    @pytest.mark.asyncio
    async def test_release_is_once_only(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=True)
        mock_redis.eval = AsyncMock(return_value=1)

        lock = DistributedLock(mock_redis, "test-key")
        await lock.acquire()
        assert await lock.release() is True
        assert await lock.release() is False
        mock_redis.eval.assert_called_once()

    @pytest.mark.asyncio
    async def test_context_manager_acquire_fail_raises(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=False)

        with pytest.raises(LockNotAcquired):
            async with DistributedLock(mock_redis, "test-key"):
                pass

    @pytest.mark.asyncio
    async def test_context_manager_releases(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(return_value=True)
        mock_redis.eval = AsyncMock(return_value=1)

        async with DistributedLock(mock_redis, "test-key"):
            mock_redis.eval.assert_not_called()
        mock_redis.eval.assert_called_once()


class TestNotificationBridge:
    def test_channel_name(self):
        assert trip_channel("TR-1") == "trip:TR-1"

    @pytest.mark.asyncio
    async def test_publishes_json(self):
        mock_redis = AsyncMock()
        bridge = NotificationBridge(mock_redis)
        at = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)

        assert await bridge.emit("trip_started", "TR-1", driver_id=7, started_at=at) is True

        channel, message = mock_redis.publish.call_args.args
        assert channel == "trip:TR-1"
        assert json.loads(message) == {
            "event": "trip_started",
            "trip_id": "TR-1",
            "driver_id": 7,
            "started_at": "2026-03-01T09:00:00+00:00",
        }

    @pytest.mark.asyncio
    async def test_failure_is_swallowed_and_logged(self, caplog):
        mock_redis = AsyncMock()
        mock_redis.publish = AsyncMock(side_effect=RedisConnectionError("down"))
        bridge = NotificationBridge(mock_redis)

        assert await bridge.emit("trip_completed", "TR-1") is False
        assert "Dropped trip_completed" in caplog.text

    @pytest.mark.asyncio
    async def test_no_client_configured(self):
        assert await NotificationBridge(None).emit("trip_rated", "TR-1") is False
