"""Unit tests for Redis status publishing and derived cache invalidation."""
import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import RedisError

from catalog_sync.models.sync_messages import SyncState, SyncStatusMessage
from catalog_sync.services.cache_invalidation import clear_derived_caches
from catalog_sync.services.sync_state import (
    SYNC_LAST_RUN_KEY,
    SYNC_STATUS_KEY,
    SyncStatusPublisher,
    get_sync_status,
    update_sync_status,
)


async def _keys(keys):
    for key in keys:
        yield key


class TestSyncStatus:
    """Test status read/write against a mocked Redis."""

    @pytest.mark.asyncio
    async def test_update_writes_json_status(self):
        redis = AsyncMock()

        ok = await update_sync_status(
            redis, SyncState.DECIDING, run_id=7, feed_path="/f.xml", processed=50, offset=25
        )

        assert ok is True
        key, payload = redis.set.await_args.args
        assert key == SYNC_STATUS_KEY
        data = json.loads(payload)
        assert data["state"] == "deciding"
        assert data["run_id"] == 7
        assert data["processed"] == 50

    @pytest.mark.asyncio
    async def test_update_swallows_redis_errors(self):
        redis = AsyncMock()
        redis.set.side_effect = RedisError("down")

        assert await update_sync_status(redis, SyncState.STREAMING) is False

    @pytest.mark.asyncio
    async def test_get_status_round_trip(self):
        redis = AsyncMock()
        redis.get.return_value = SyncStatusMessage(
            state=SyncState.COMMITTING, run_id=3
        ).model_dump_json().encode()

        status = await get_sync_status(redis)

        assert status.state == SyncState.COMMITTING
        assert status.is_syncing is True

    @pytest.mark.asyncio
    async def test_get_status_defaults_to_idle(self):
        redis = AsyncMock()
        redis.get.return_value = None

        status = await get_sync_status(redis)

        assert status.state == SyncState.IDLE
        assert status.is_syncing is False

    @pytest.mark.asyncio
    async def test_get_status_on_garbage(self):
        redis = AsyncMock()
        redis.get.return_value = b"{not json"

        assert (await get_sync_status(redis)).state == SyncState.IDLE

    @pytest.mark.asyncio
    async def test_publisher_records_completion(self):
        redis = AsyncMock()
        redis.get.return_value = SyncStatusMessage(
            state=SyncState.COMPLETED, updated_at="2026-01-01T00:00:00+00:00"
        ).model_dump_json().encode()

        await SyncStatusPublisher(redis).publish(SyncState.COMPLETED, run_id=1)

        keys = [c.args[0] for c in redis.set.await_args_list]
        assert keys == [SYNC_STATUS_KEY, SYNC_LAST_RUN_KEY]


class TestClearDerivedCaches:
    """Test SCAN based key deletion."""

    @pytest.mark.asyncio
    async def test_deletes_matching_keys(self):
        redis = MagicMock()
        redis.scan_iter = MagicMock(return_value=_keys([b"catalog:cache:a", b"catalog:cache:b"]))
        redis.delete = AsyncMock(return_value=2)

        deleted = await clear_derived_caches(redis, "catalog:cache:*")

        assert deleted == 2
        redis.scan_iter.assert_called_once_with(match="catalog:cache:*", count=500)
        redis.delete.assert_awaited_once_with(b"catalog:cache:a", b"catalog:cache:b")

    @pytest.mark.asyncio
    async def test_no_matching_keys(self):
        redis = MagicMock()
        redis.scan_iter = MagicMock(return_value=_keys([]))
        redis.delete = AsyncMock()

        assert await clear_derived_caches(redis, "catalog:cache:*") == 0
        redis.delete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_redis_errors_propagate(self):
        redis = MagicMock()
        redis.scan_iter = MagicMock(return_value=_keys([b"k"]))
        redis.delete = AsyncMock(side_effect=RedisError("down"))

        with pytest.raises(RedisError):
            await clear_derived_caches(redis, "*")
