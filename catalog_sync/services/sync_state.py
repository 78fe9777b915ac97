"""Sync status publishing using Redis.

Progress of the running invocation is stored under a single key so a
dashboard or a second shell can see what the engine is doing. Publishing is
best effort: Redis errors are logged and never interrupt a sync.
"""
import json
from typing import Optional
import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError

from catalog_sync.models.sync_messages import SyncState, SyncStatusMessage

logger = structlog.get_logger(__name__)

# Redis key constants
SYNC_STATUS_KEY = "catalog_sync:status"
SYNC_LAST_RUN_KEY = "catalog_sync:last_run"


async def get_sync_status(
    redis: Redis,
) -> SyncStatusMessage:
    """Get current sync status from Redis.

    Args:
        redis: Redis connection

    Returns:
        SyncStatusMessage with current sync state (idle when unknown)
    """
    try:
        status_json = await redis.get(SYNC_STATUS_KEY)

        if status_json:
            if isinstance(status_json, bytes):
                status_json = status_json.decode()
            return SyncStatusMessage(**json.loads(status_json))
        return SyncStatusMessage(state=SyncState.IDLE)

    except (json.JSONDecodeError, RedisError) as e:
        logger.error("get_sync_status_failed", error=str(e))
        return SyncStatusMessage(state=SyncState.IDLE)


async def update_sync_status(
    redis: Redis,
    state: SyncState,
    run_id: Optional[int] = None,
    feed_path: Optional[str] = None,
    processed: int = 0,
    offset: int = 0,
) -> bool:
    """Store the current sync status.

    Returns:
        True if status was updated successfully
    """
    log = logger.bind(state=state.value, run_id=run_id)

    try:
        status = SyncStatusMessage(
            state=state,
            run_id=run_id,
            feed_path=feed_path,
            processed=processed,
            offset=offset,
        )
        await redis.set(SYNC_STATUS_KEY, status.model_dump_json())
        log.debug("sync_status_updated")
        return True

    except RedisError as e:
        log.error("update_sync_status_failed", error=str(e))
        return False


async def record_sync_completion(
    redis: Redis,
    completed_at: str,
) -> bool:
    """Record the timestamp of the last completed sync."""
    try:
        await redis.set(SYNC_LAST_RUN_KEY, completed_at)
        logger.debug("sync_completion_recorded", completed_at=completed_at)
        return True
    except RedisError as e:
        logger.error("record_sync_completion_failed", error=str(e))
        return False


class SyncStatusPublisher:
    """Publishes orchestrator state transitions to Redis."""

    def __init__(self, redis: Redis):
        self.redis = redis

    async def publish(
        self,
        state: SyncState,
        run_id: Optional[int] = None,
        feed_path: Optional[str] = None,
        processed: int = 0,
        offset: int = 0,
    ) -> bool:
        published = await update_sync_status(
            self.redis,
            state,
            run_id=run_id,
            feed_path=feed_path,
            processed=processed,
            offset=offset,
        )
        if published and state == SyncState.COMPLETED:
            status = await get_sync_status(self.redis)
            await record_sync_completion(self.redis, status.updated_at)
        return published
